"""Delivery Observatory — real-time message flow observability.

Uses Protean's built-in Observatory server to provide a live dashboard,
Prometheus metrics, and REST API for monitoring the event pipeline that
feeds the audit log and the quota/stock handlers.

Usage:
    uvicorn src.observatory:app --host 0.0.0.0 --port 9000
"""

from delivery.domain import delivery
from protean.server.observatory import create_observatory_app

delivery.init()

app = create_observatory_app(
    domains=[delivery],
    title="Delivery Observatory",
)
