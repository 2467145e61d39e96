"""Tests for idempotency key derivation."""

from delivery.order.idempotency import derive_idempotency_key, normalise_cart

WINDOW = 300
NOW = 1_800_000_000.0


class TestNormaliseCart:
    def test_merges_duplicates_and_sorts(self):
        lines = [
            {"product_id": "b", "quantity": 1},
            {"product_id": "a", "quantity": 2},
            {"product_id": "b", "quantity": 3},
        ]
        assert normalise_cart(lines) == [("a", 2), ("b", 4)]


class TestDeriveKey:
    def test_same_cart_in_any_order_same_key(self):
        first = [{"product_id": "a", "quantity": 1}, {"product_id": "b", "quantity": 2}]
        second = [{"product_id": "b", "quantity": 2}, {"product_id": "a", "quantity": 1}]
        assert derive_idempotency_key("cust-1", first, WINDOW, now=NOW) == derive_idempotency_key(
            "cust-1", second, WINDOW, now=NOW
        )

    def test_different_customer_different_key(self):
        lines = [{"product_id": "a", "quantity": 1}]
        assert derive_idempotency_key("cust-1", lines, WINDOW, now=NOW) != derive_idempotency_key(
            "cust-2", lines, WINDOW, now=NOW
        )

    def test_different_quantity_different_key(self):
        assert derive_idempotency_key(
            "cust-1", [{"product_id": "a", "quantity": 1}], WINDOW, now=NOW
        ) != derive_idempotency_key("cust-1", [{"product_id": "a", "quantity": 2}], WINDOW, now=NOW)

    def test_next_window_different_key(self):
        lines = [{"product_id": "a", "quantity": 1}]
        assert derive_idempotency_key("cust-1", lines, WINDOW, now=NOW) != derive_idempotency_key(
            "cust-1", lines, WINDOW, now=NOW + WINDOW
        )

    def test_client_key_ignores_cart_and_time(self):
        assert derive_idempotency_key(
            "cust-1", [{"product_id": "a", "quantity": 1}], WINDOW, client_key="abc", now=NOW
        ) == derive_idempotency_key("cust-1", [{"product_id": "z", "quantity": 9}], WINDOW, client_key="abc", now=0)

    def test_client_key_scoped_to_customer(self):
        lines = [{"product_id": "a", "quantity": 1}]
        assert derive_idempotency_key("cust-1", lines, WINDOW, client_key="abc") != derive_idempotency_key(
            "cust-2", lines, WINDOW, client_key="abc"
        )
