"""Application tests for public tracking, ETA and the tracking rate limits."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from delivery.courier.management import RecordCourierLocation
from delivery.errors import RateLimited
from delivery.order.cancellation import CancelOrder
from delivery.order.claim import ClaimOrder
from delivery.order.progress import AdvanceOrderStatus
from delivery.tracking.rate_limit import TrackingRateWindow, check_tracking_rate
from delivery.tracking.service import TrackingService
from protean import current_domain
from protean.exceptions import ObjectNotFoundError


@pytest.fixture()
def order(make_product, place_order):
    product_id = make_product(name="Blue Dream 3.5g", stock=10)
    return place_order([{"product_id": product_id, "quantity": 1}])


def _claim(order, courier_id):
    current_domain.process(ClaimOrder(order_id=str(order.id), courier_id=courier_id), asynchronous=False)


def _advance(order, courier_id, new_status, **coords):
    current_domain.process(
        AdvanceOrderStatus(order_id=str(order.id), courier_id=courier_id, new_status=new_status, **coords),
        asynchronous=False,
    )


class TestSnapshot:
    def test_pending_order(self, order):
        snapshot = TrackingService().get_status(order.tracking_code)

        assert snapshot.order_number == order.order_number
        assert snapshot.status == "pending"
        assert snapshot.status_message == "We're finding you a driver..."
        assert snapshot.courier is None
        assert snapshot.eta.text == "45-60 min"
        assert snapshot.items == [{"name": "Blue Dream 3.5g", "quantity": 1}]

    def test_confirmed_shows_courier_first_name_only(self, order, make_courier):
        _claim(order, make_courier(full_name="Dana Rivers"))
        data = TrackingService().get_status(order.tracking_code).as_dict()

        assert data["status_message"] == "Dana is preparing to pick up your order"
        assert data["courier_public_info"]["first_name"] == "Dana"
        assert "Rivers" not in str(data)
        assert data["courier_public_info"]["lat"] is None

    def test_location_hidden_before_pickup(self, order, make_courier):
        courier_id = make_courier()
        current_domain.process(RecordCourierLocation(courier_id=courier_id, lat=40.72, lng=-73.95), asynchronous=False)
        _claim(order, courier_id)

        snapshot = TrackingService().get_status(order.tracking_code)
        assert snapshot.courier.lat is None
        assert snapshot.eta.text == "15-20 min"

    def test_live_eta_out_for_delivery(self, order, make_courier):
        courier_id = make_courier()
        _claim(order, courier_id)
        _advance(order, courier_id, "preparing")
        _advance(order, courier_id, "out_for_delivery", lat=40.7081, lng=-73.9571)

        snapshot = TrackingService().get_status(order.tracking_code)
        assert snapshot.status_message == "Dana is heading to you!"
        assert snapshot.courier.lat == 40.7081
        assert snapshot.eta.source == "live"

    def test_stale_location_falls_back_to_heuristic(self, order, make_courier):
        courier_id = make_courier()
        _claim(order, courier_id)
        _advance(order, courier_id, "preparing")
        _advance(order, courier_id, "out_for_delivery")
        current_domain.process(
            RecordCourierLocation(
                courier_id=courier_id,
                lat=40.7081,
                lng=-73.9571,
                recorded_at=datetime.now(UTC) - timedelta(hours=1),
            ),
            asynchronous=False,
        )

        snapshot = TrackingService().get_status(order.tracking_code)
        assert snapshot.eta.text == "10-15 min"

    def test_cancelled_has_no_eta(self, order):
        current_domain.process(CancelOrder(order_id=str(order.id), reason="Out of area"), asynchronous=False)
        snapshot = TrackingService().get_status(order.tracking_code)
        assert snapshot.status_message == "This order was cancelled"
        assert snapshot.eta is None

    def test_timeline_in_order(self, order, make_courier):
        _claim(order, make_courier())
        timeline = TrackingService().get_status(order.tracking_code).timeline
        assert [entry["status"] for entry in timeline] == ["pending", "confirmed"]

    def test_snapshot_omits_other_customers(self, order, make_product, place_order):
        product_id = make_product(name="Sour Diesel 3.5g")
        place_order([{"product_id": product_id, "quantity": 1}], customer_id="cust-002")

        data = TrackingService().get_status(order.tracking_code).as_dict()
        assert "Sour Diesel" not in str(data)
        assert "cust-001" not in str(data)
        assert "Bedford" not in str(data)


class TestLookup:
    def test_unknown_code(self, order):
        with pytest.raises(ObjectNotFoundError):
            TrackingService().get_status("not-a-real-code")

    def test_order_id_is_not_a_tracking_code(self, order):
        with pytest.raises(ObjectNotFoundError):
            TrackingService().get_status(str(order.id))


class TestRateLimit:
    def test_counts_lookups(self):
        assert check_tracking_rate("code-1", now=1000.0) == 1
        assert check_tracking_rate("code-1", now=1001.0) == 2

    def test_limit_per_window(self, monkeypatch):
        monkeypatch.setenv("TRACKING_RATE_LIMIT", "3")
        for _ in range(3):
            check_tracking_rate("code-1", now=1000.0)

        with pytest.raises(RateLimited) as exc:
            check_tracking_rate("code-1", now=1010.0)
        assert exc.value.status_code == 429
        assert exc.value.detail["retry_after_seconds"] == 10

    def test_new_window_resets(self, monkeypatch):
        monkeypatch.setenv("TRACKING_RATE_LIMIT", "1")
        check_tracking_rate("code-1", now=1000.0)
        assert check_tracking_rate("code-1", now=1080.0) == 1

    def test_codes_are_independent(self, monkeypatch):
        monkeypatch.setenv("TRACKING_RATE_LIMIT", "1")
        check_tracking_rate("code-1", now=1000.0)
        assert check_tracking_rate("code-2", now=1000.0) == 1

    def test_explicit_limit(self):
        assert check_tracking_rate("caller:203.0.113.7", now=1000.0, limit=1) == 1
        with pytest.raises(RateLimited):
            check_tracking_rate("caller:203.0.113.7", now=1000.0, limit=1)

    def test_closed_windows_are_pruned(self):
        check_tracking_rate("code-1", now=1000.0)
        check_tracking_rate("code-2", now=1000.0)
        check_tracking_rate("code-1", now=1080.0)

        windows = _windows()
        assert len(windows) == 1
        assert windows[0].window_start == 1080


def _windows():
    return current_domain.repository_for(TrackingRateWindow)._dao.query.all().items


@pytest.fixture()
def frozen_clock(monkeypatch):
    from delivery.tracking import rate_limit

    monkeypatch.setattr(rate_limit, "time", SimpleNamespace(time=lambda: 1000.0))


@pytest.mark.usefixtures("frozen_clock")
class TestGuessing:
    def test_guessed_codes_leave_no_counters(self, order, monkeypatch):
        monkeypatch.setenv("TRACKING_MISS_LIMIT", "500")
        for n in range(200):
            with pytest.raises(ObjectNotFoundError):
                TrackingService().get_status(f"guess-{n}", caller="203.0.113.7")

        windows = _windows()
        assert len(windows) == 1
        assert windows[0].count == 200

    def test_caller_is_throttled_across_codes(self, order, monkeypatch):
        monkeypatch.setenv("TRACKING_MISS_LIMIT", "3")
        for n in range(3):
            with pytest.raises(ObjectNotFoundError):
                TrackingService().get_status(f"guess-{n}", caller="203.0.113.7")

        with pytest.raises(RateLimited):
            TrackingService().get_status("guess-99", caller="203.0.113.7")

    def test_other_callers_unaffected(self, order, monkeypatch):
        monkeypatch.setenv("TRACKING_MISS_LIMIT", "1")
        with pytest.raises(ObjectNotFoundError):
            TrackingService().get_status("guess-1", caller="203.0.113.7")

        with pytest.raises(ObjectNotFoundError):
            TrackingService().get_status("guess-1", caller="198.51.100.2")

    def test_misses_do_not_spend_the_code_budget(self, order, monkeypatch):
        monkeypatch.setenv("TRACKING_RATE_LIMIT", "1")
        monkeypatch.setenv("TRACKING_MISS_LIMIT", "50")
        for n in range(5):
            with pytest.raises(ObjectNotFoundError):
                TrackingService().get_status(f"guess-{n}", caller="203.0.113.7")

        assert TrackingService().get_status(order.tracking_code).status == "pending"

    def test_anonymous_callers_share_a_counter(self, order, monkeypatch):
        monkeypatch.setenv("TRACKING_MISS_LIMIT", "2")
        for n in range(2):
            with pytest.raises(ObjectNotFoundError):
                TrackingService().get_status(f"guess-{n}")

        with pytest.raises(RateLimited):
            TrackingService().get_status("guess-2")
