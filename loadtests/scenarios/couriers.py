"""Courier load test scenarios.

Couriers poll the available-orders list and race to claim the same orders.
Losing a claim (409 already_claimed) is expected; two winners for one order
is a failure.
"""

import random

from locust import HttpUser, between, task

from loadtests.data_generators import courier_data, location_near
from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.helpers.state import CourierState

_NEXT_STATUS = {
    "confirmed": "preparing",
    "preparing": "out_for_delivery",
    "out_for_delivery": "delivered",
}


class CourierClaimRaceUser(HttpUser):
    """Register -> Go Online -> (Poll -> Claim -> Advance with location pushes)*."""

    wait_time = between(0.2, 1.0)

    def on_start(self):
        self.state = CourierState()
        resp = self.client.post("/couriers", json=courier_data(), name="POST /couriers")
        if resp.status_code != 201:
            return
        self.state.courier_id = resp.json()["id"]
        self.client.put(
            f"/couriers/{self.state.courier_id}/online",
            json={"is_online": True},
            name="PUT /couriers/{id}/online",
        )

    @property
    def _headers(self) -> dict:
        return {"X-Courier-Id": self.state.courier_id}

    @task(3)
    def claim_or_advance(self):
        if not self.state.courier_id:
            return
        if self.state.order_id is None:
            self._claim_next()
        else:
            self._advance()

    @task(1)
    def push_location(self):
        if not self.state.courier_id:
            return
        position = location_near(self.state.lat, self.state.lng)
        self.state.lat, self.state.lng = position["lat"], position["lng"]
        with self.client.post(
            f"/couriers/{self.state.courier_id}/location",
            json=position,
            catch_response=True,
            name="POST /couriers/{id}/location",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Location push failed: {resp.status_code} — {extract_error_detail(resp)}")

    def _claim_next(self):
        resp = self.client.get("/orders/available", name="GET /orders/available")
        if resp.status_code != 200 or not resp.json():
            return
        # Popular orders near the head of the list are where races happen
        candidate = random.choice(resp.json()[:3])
        with self.client.post(
            f"/orders/{candidate['order_id']}/claim",
            headers=self._headers,
            catch_response=True,
            name="POST /orders/{id}/claim",
        ) as claim:
            if claim.status_code == 200:
                self.state.order_id = candidate["order_id"]
                self.state.current_status = claim.json()["status"]
                self.state.claims_won += 1
            elif error_code(claim) == "already_claimed" or claim.status_code == 400:
                self.state.claims_lost += 1
                claim.success()
            else:
                claim.failure(f"Claim failed: {claim.status_code} — {extract_error_detail(claim)}")

    def _advance(self):
        target = _NEXT_STATUS.get(self.state.current_status)
        if target is None:
            self.state.order_id = None
            return
        position = location_near(self.state.lat, self.state.lng)
        with self.client.post(
            "/orders/status",
            json={"order_id": self.state.order_id, "new_status": target, **position},
            headers=self._headers,
            catch_response=True,
            name="POST /orders/status",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = target
                if target == "delivered":
                    self.state.order_id = None
            elif resp.status_code == 400:
                # Cancelled or reassigned underneath us
                resp.success()
                self.state.order_id = None
            else:
                resp.failure(f"Advance failed: {resp.status_code} — {extract_error_detail(resp)}")
