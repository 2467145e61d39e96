"""Mixed delivery workload scenario.

Combines customer checkouts, scarce-stock contention and courier claim
races with weights that model an evening rush. This is the recommended
scenario for load baseline testing.
"""

from locust import HttpUser, between

from loadtests.scenarios.checkout import CheckoutJourney


class MixedWorkloadUser(HttpUser):
    """Customers checking out while couriers race for the resulting orders.

    Run together with CourierClaimRaceUser so that placed orders are
    claimed and delivered:

        locust -f loadtests/locustfile.py MixedWorkloadUser CourierClaimRaceUser
    """

    wait_time = between(0.5, 3.0)
    tasks = {CheckoutJourney: 1}
