"""Same-day delivery load testing — Locust entry point.

Usage:
    # Evening rush: checkouts plus couriers racing for claims
    locust -f loadtests/locustfile.py MixedWorkloadUser CourierClaimRaceUser

    # Stock and quota contention:
    locust -f loadtests/locustfile.py ScarceStockUser QuotaHammerUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py MixedWorkloadUser CourierClaimRaceUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
from collections import Counter

from locust import events

from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.scenarios.checkout import QuotaHammerUser, ScarceStockUser  # noqa: F401
from loadtests.scenarios.couriers import CourierClaimRaceUser  # noqa: F401
from loadtests.scenarios.mixed import MixedWorkloadUser  # noqa: F401

logger = logging.getLogger("loadtest")

# Rejections the contention scenarios exist to provoke, tallied per error code
rejections: Counter = Counter()


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
        return
    if response is None or response.status_code < 400:
        return

    code = error_code(response)
    if code is not None:
        rejections[code] += 1
    if code is None or response.status_code >= 500:
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, extract_error_detail(response))


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    rejections.clear()
    logger.info("load test started against %s", environment.host)


@events.test_stop.add_listener
def on_test_stop(**_kwargs):
    if not rejections:
        logger.info("load test stopped with no order rejections")
        return
    summary = ", ".join(f"{code}={count}" for code, count in rejections.most_common())
    logger.info("load test stopped; order rejections by code: %s", summary)
