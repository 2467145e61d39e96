"""Contended writes under real threads.

Every worker runs in its own domain context and waits on a barrier, so all of
them read the same committed row before any of them writes.
"""

import threading

import pytest
from delivery.domain import delivery
from delivery.errors import AlreadyClaimed, InsufficientStock, QuotaExceeded
from delivery.inventory.service import InventoryReservations
from delivery.order.claim import ClaimOrder
from delivery.order.order import Order
from delivery.quota.service import QuotaLedger
from protean import current_domain


def _run_together(workers):
    """Start every callable at once; return (outcome, value) per worker."""
    barrier = threading.Barrier(len(workers))
    outcomes = [None] * len(workers)

    def run(index, work):
        with delivery.domain_context():
            barrier.wait()
            try:
                outcomes[index] = ("ok", work())
            except Exception as exc:
                outcomes[index] = (type(exc).__name__, exc)

    threads = [threading.Thread(target=run, args=(i, work)) for i, work in enumerate(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    assert all(not thread.is_alive() for thread in threads)
    return outcomes


@pytest.fixture(autouse=True)
def generous_retries(monkeypatch):
    monkeypatch.setenv("CAS_MAX_ATTEMPTS", "25")


class TestStockRace:
    @pytest.mark.parametrize("stock,workers", [(1, 6), (3, 8), (5, 12)])
    def test_exactly_stock_many_winners(self, make_product, stock, workers):
        product_id = make_product(stock=stock)

        outcomes = _run_together(
            [lambda n=n: InventoryReservations().reserve(f"ord-race-{n}", product_id, 1) for n in range(workers)]
        )

        kinds = [kind for kind, _ in outcomes]
        assert kinds.count("ok") == stock
        assert kinds.count(InsufficientStock.__name__) == workers - stock
        assert InventoryReservations().available(product_id) == 0

    def test_multi_unit_requests_never_oversell(self, make_product):
        product_id = make_product(stock=5)

        outcomes = _run_together(
            [lambda n=n: InventoryReservations().reserve(f"ord-race-{n}", product_id, 2) for n in range(6)]
        )

        winners = [kind for kind, _ in outcomes].count("ok")
        assert winners == 2
        assert InventoryReservations().available(product_id) == 1


class TestQuotaRace:
    def test_same_customer_orders_over_ceiling_have_one_winner(self):
        outcomes = _run_together(
            [
                lambda: QuotaLedger().reserve("ord-a", "cust-race", 50.0, 0.0),
                lambda: QuotaLedger().reserve("ord-b", "cust-race", 50.0, 0.0),
            ]
        )

        kinds = sorted(kind for kind, _ in outcomes)
        assert kinds == sorted(["ok", QuotaExceeded.__name__])
        assert QuotaLedger().remaining("cust-race") == (35.05, 24.0)

    def test_orders_within_ceiling_all_land(self):
        outcomes = _run_together(
            [lambda n=n: QuotaLedger().reserve(f"ord-{n}", "cust-race", 10.0, 2.0) for n in range(6)]
        )

        assert [kind for kind, _ in outcomes] == ["ok"] * 6
        assert QuotaLedger().remaining("cust-race") == (25.05, 12.0)


class TestClaimRace:
    def test_one_courier_wins(self, make_product, make_courier, place_order):
        product_id = make_product(stock=5)
        order_id = str(place_order([{"product_id": product_id, "quantity": 1}]).id)
        couriers = [make_courier(full_name=f"Courier {n}") for n in range(4)]

        outcomes = _run_together(
            [
                lambda courier_id=courier_id: current_domain.process(
                    ClaimOrder(order_id=order_id, courier_id=courier_id), asynchronous=False
                )
                for courier_id in couriers
            ]
        )

        kinds = [kind for kind, _ in outcomes]
        assert kinds.count("ok") == 1
        assert kinds.count(AlreadyClaimed.__name__) == 3
        winner = couriers[kinds.index("ok")]
        assert str(current_domain.repository_for(Order).get(order_id).courier_id) == winner
