import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def delivery_bed():
    from delivery.domain import delivery

    bed = DomainFixture(delivery)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(delivery_bed):
    with delivery_bed.domain_context():
        yield


@pytest.fixture()
def make_product():
    """Register a catalog product with an inventory record; returns its id."""
    from delivery.catalog.registration import RegisterProduct
    from protean import current_domain

    def _make(
        name="Blue Dream 3.5g",
        price=45.0,
        weight_grams=3.5,
        category="flower",
        is_concentrate=False,
        stock=10,
        merchant_id="merchant-1",
        low_stock_threshold=2,
    ):
        return current_domain.process(
            RegisterProduct(
                name=name,
                price=price,
                weight_grams=weight_grams,
                category=category,
                is_concentrate=is_concentrate,
                merchant_id=merchant_id,
                initial_stock=stock,
                low_stock_threshold=low_stock_threshold,
            ),
            asynchronous=False,
        )

    return _make


@pytest.fixture()
def make_courier():
    """Register a courier, online by default; returns its id."""
    from delivery.courier.management import RegisterCourier, SetCourierAvailability
    from protean import current_domain

    def _make(full_name="Dana Rivers", vehicle_type="bike", online=True):
        courier_id = current_domain.process(
            RegisterCourier(full_name=full_name, vehicle_type=vehicle_type),
            asynchronous=False,
        )
        if online:
            current_domain.process(
                SetCourierAvailability(courier_id=courier_id, is_online=True),
                asynchronous=False,
            )
        return courier_id

    return _make


@pytest.fixture()
def place_order():
    """Run the placement saga for a simple Brooklyn cash order."""
    from delivery.order.placement import OrderPlacement, PlacementRequest

    def _place(lines, customer_id="cust-001", borough="Brooklyn", **overrides):
        request = PlacementRequest(
            lines=lines,
            address=overrides.pop(
                "address",
                {"street": "123 Bedford Ave", "borough": borough, "lat": 40.7170, "lng": -73.9570},
            ),
            payment_method=overrides.pop("payment_method", "cash"),
            speed_tier=overrides.pop("speed_tier", "standard"),
            customer_id=customer_id,
            **overrides,
        )
        return OrderPlacement().place(request).order

    return _place
