"""Checkout load test scenarios.

A stateful journey from an empty catalog to a tracked order, and a
contention scenario where many customers race for a handful of scarce
products. Rejections the API is designed to produce under contention
(insufficient stock, quota exceeded) are counted as successes.
"""

import random
import threading
import uuid

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import cancellation_data, customer_id, order_data, product_data
from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.helpers.state import CheckoutState

_EXPECTED_REJECTIONS = {"insufficient_stock", "quota_exceeded"}


class CheckoutJourney(SequentialTaskSet):
    """Register Products -> Quote -> Place Order -> Retry (replayed) -> Track -> Quota.

    The happy path a storefront drives, including the client retry that
    must be answered with the same order.
    """

    def on_start(self):
        self.state = CheckoutState(customer_id=customer_id())

    @task
    def register_products(self):
        for _ in range(3):
            with self.client.post(
                "/products",
                json=product_data(),
                catch_response=True,
                name="POST /products",
            ) as resp:
                if resp.status_code == 201:
                    self.state.product_ids.append(resp.json()["id"])
                else:
                    resp.failure(f"Register product failed: {resp.status_code} — {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def quote(self):
        with self.client.post(
            "/pricing/quote",
            json={"subtotal": round(random.uniform(20, 150), 2), "borough": "Brooklyn"},
            catch_response=True,
            name="POST /pricing/quote",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Quote failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def place_order(self):
        self.payload = order_data(self.state.product_ids)
        self.idempotency_key = uuid.uuid4().hex
        with self.client.post(
            "/orders",
            json=self.payload,
            headers={"X-Customer-Id": self.state.customer_id, "Idempotency-Key": self.idempotency_key},
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                order = resp.json()["order"]
                self.state.order_id = order["order_id"]
                self.state.tracking_code = order["tracking_code"]
                self.state.orders_placed += 1
            elif error_code(resp) in _EXPECTED_REJECTIONS:
                resp.success()
                self.interrupt()
            else:
                resp.failure(f"Place order failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def retry_order(self):
        with self.client.post(
            "/orders",
            json=self.payload,
            headers={"X-Customer-Id": self.state.customer_id, "Idempotency-Key": self.idempotency_key},
            catch_response=True,
            name="POST /orders (retry)",
        ) as resp:
            if resp.status_code != 201:
                resp.failure(f"Retry failed: {resp.status_code} — {extract_error_detail(resp)}")
            elif resp.json()["order"]["order_id"] != self.state.order_id:
                resp.failure("Retry created a second order")

    @task
    def track(self):
        with self.client.get(
            f"/track/{self.state.tracking_code}",
            catch_response=True,
            name="GET /track/{code}",
        ) as resp:
            if resp.status_code not in (200, 429):
                resp.failure(f"Track failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def check_quota(self):
        with self.client.get(
            f"/quota/{self.state.customer_id}",
            catch_response=True,
            name="GET /quota/{customer_id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Quota lookup failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def maybe_cancel(self):
        if random.random() < 0.2:
            with self.client.post(
                f"/orders/{self.state.order_id}/cancel",
                json=cancellation_data(),
                catch_response=True,
                name="POST /orders/{id}/cancel",
            ) as resp:
                # A courier may already have delivered it
                if resp.status_code not in (200, 400):
                    resp.failure(f"Cancel failed: {resp.status_code} — {extract_error_detail(resp)}")
        self.interrupt()


class ScarceStockUser(HttpUser):
    """Many customers checking out the same few low-stock products.

    Exercises the conditional stock decrement: the number of successful
    orders per product can never exceed its initial stock.
    """

    wait_time = between(0.1, 0.5)
    _products: list[str] = []
    _lock = threading.Lock()

    def on_start(self):
        with ScarceStockUser._lock:
            if not ScarceStockUser._products:
                for _ in range(3):
                    resp = self.client.post("/products", json=product_data(stock=25), name="POST /products (scarce)")
                    if resp.status_code == 201:
                        ScarceStockUser._products.append(resp.json()["id"])

    @task
    def checkout_scarce(self):
        if not ScarceStockUser._products:
            return
        payload = order_data(ScarceStockUser._products, max_lines=1)
        with self.client.post(
            "/orders",
            json=payload,
            headers={"X-Customer-Id": customer_id()},
            catch_response=True,
            name="POST /orders (scarce)",
        ) as resp:
            if resp.status_code == 201 or error_code(resp) in _EXPECTED_REJECTIONS:
                resp.success()
            else:
                resp.failure(f"Scarce checkout failed: {resp.status_code} — {extract_error_detail(resp)}")


class QuotaHammerUser(HttpUser):
    """One customer placing order after order until the daily limit bites."""

    wait_time = between(0.2, 1.0)

    def on_start(self):
        self.state = CheckoutState(customer_id=customer_id())
        resp = self.client.post(
            "/products",
            json=dict(product_data(stock=10_000), name="Quarter 7g", weight_grams=7.0, category="flower", price=80.0),
            name="POST /products",
        )
        if resp.status_code == 201:
            self.state.product_ids.append(resp.json()["id"])

    @task
    def order_quarter(self):
        if not self.state.product_ids:
            return
        payload = order_data(self.state.product_ids, max_lines=1)
        payload["items"][0]["quantity"] = 1
        with self.client.post(
            "/orders",
            json=payload,
            headers={"X-Customer-Id": self.state.customer_id, "Idempotency-Key": uuid.uuid4().hex},
            catch_response=True,
            name="POST /orders (quota)",
        ) as resp:
            if resp.status_code == 201:
                self.state.orders_placed += 1
                resp.success()
            elif error_code(resp) == "quota_exceeded":
                self.state.quota_rejections += 1
                # 12 x 7g = 84g is the most one customer can buy in a day
                if self.state.orders_placed > 12:
                    resp.failure(f"Quota ceiling breached after {self.state.orders_placed} orders")
                else:
                    resp.success()
            else:
                resp.failure(f"Quota order failed: {resp.status_code} — {extract_error_detail(resp)}")
