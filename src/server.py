"""Protean Engine runner for the delivery domain.

Starts Engine workers that process events asynchronously:
- OutboxProcessor: polls outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes projectors and event handlers
  (audit log, quota finalization, stock release on cancellation)

Usage:
    PROTEAN_ENV=production python src/server.py
"""

import argparse
import asyncio

from protean.server.engine import Engine


async def run(test_mode: bool = False):
    from delivery.domain import delivery
    from delivery.utils.logging import configure_logging

    configure_logging(json_output=not test_mode)
    delivery.init()
    engine = Engine(delivery, test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Delivery Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process pending messages once and exit",
    )
    args = parser.parse_args()

    asyncio.run(run(args.test_mode))


if __name__ == "__main__":
    main()
