"""Fixed-window request counters for public tracking lookups.

Counters live in the data store, keyed by a digest of the subject and the
window start, so every worker process shares them. Subjects are either a
tracking code that resolved to an order (``code:<code>``) or the caller that
asked for a code that did not (``caller:<address>``); guessed codes never get
a counter of their own. Increments are conditional on the count that was
read, and windows that have closed are deleted when a new one opens.
"""

import hashlib
import time

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain
from protean.utils.query import Q

from delivery.domain import delivery
from delivery.errors import RateLimited
from delivery.settings import service_settings
from delivery.utils.db import conditional_delete, conditional_update, insert_if_absent, read_committed

logger = structlog.get_logger(__name__)


@delivery.aggregate
class TrackingRateWindow:
    window_id = Identifier(identifier=True)
    subject_digest = String(required=True, max_length=64)
    window_start = Integer(required=True)
    count = Integer(default=0)


@delivery.repository(part_of=TrackingRateWindow)
class TrackingRateWindowRepository:
    def get_or_create(self, window_id: str, subject_digest: str, window_start: int) -> TrackingRateWindow:
        try:
            return read_committed(self, window_id)
        except ObjectNotFoundError:
            window = TrackingRateWindow(window_id=window_id, subject_digest=subject_digest, window_start=window_start)
            if insert_if_absent(self, window):
                self.prune(before=window_start)
            return read_committed(self, window_id)

    def compare_and_increment(self, window: TrackingRateWindow) -> bool:
        updated = conditional_update(
            self,
            Q(window_id=window.window_id, count=window.count),
            {"count": window.count + 1},
        )
        return updated == 1

    def prune(self, before: int) -> int:
        """Delete every window that started before ``before``."""
        removed = conditional_delete(self, Q(window_start__lt=before))
        if removed:
            logger.debug("pruned tracking rate windows", removed=removed, before=before)
        return removed


def check_tracking_rate(subject: str, now: float | None = None, limit: int | None = None) -> int:
    """Count one lookup against ``subject``. Raises RateLimited over the limit.

    Returns the number of lookups in the current window, this one included.
    """
    settings = service_settings()
    limit = limit if limit is not None else settings.tracking_rate_limit
    now = now if now is not None else time.time()
    window_start = int(now // settings.tracking_rate_window_seconds) * settings.tracking_rate_window_seconds
    digest = hashlib.sha256(subject.encode()).hexdigest()
    window_id = f"{digest}:{window_start}"

    repo = current_domain.repository_for(TrackingRateWindow)
    for _ in range(settings.cas_max_attempts):
        window = repo.get_or_create(window_id, digest, window_start)
        if window.count >= limit:
            break
        if repo.compare_and_increment(window):
            return window.count + 1

    retry_after = window_start + settings.tracking_rate_window_seconds - int(now)
    raise RateLimited(retry_after_seconds=max(1, retry_after))
