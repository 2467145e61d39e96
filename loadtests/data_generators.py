"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules
(regulated products declare a weight, boroughs are inside the geofence) and
match the exact field names expected by the API's Pydantic request schemas.
"""

import random
import uuid

from faker import Faker

fake = Faker()

# ---------- Geography ----------

# Rough borough centroids; drop-offs are jittered around them
BOROUGH_CENTROIDS = {
    "Manhattan": (40.7831, -73.9712),
    "Brooklyn": (40.6782, -73.9442),
    "Queens": (40.7282, -73.7949),
    "Bronx": (40.8448, -73.8648),
    "Staten Island": (40.5795, -74.1502),
}


def _jitter(value: float, spread: float = 0.02) -> float:
    return round(value + random.uniform(-spread, spread), 6)


def address_data(borough: str | None = None) -> dict:
    """Generate a DeliveryAddressRequest payload inside the served area."""
    borough = borough or random.choice(list(BOROUGH_CENTROIDS))
    lat, lng = BOROUGH_CENTROIDS[borough]
    return {
        "street": fake.street_address()[:255],
        "borough": borough,
        "apartment": random.choice([None, f"Apt {random.randint(1, 30)}{random.choice('ABCD')}"]),
        "notes": random.choice([None, "Buzz twice", "Leave with doorman"]),
        "lat": _jitter(lat),
        "lng": _jitter(lng),
    }


def unserved_address() -> dict:
    return {"street": fake.street_address()[:255], "borough": "Hoboken"}


# ---------- Catalog ----------

_STRAINS = ["Blue Dream", "Gelato", "Sour Diesel", "Wedding Cake", "Runtz", "Gorilla Glue"]


def product_data(stock: int | None = None, merchant_id: str | None = None) -> dict:
    """Generate a RegisterProductRequest payload.

    Mostly eighths of flower, some concentrates and some unregulated
    accessories.
    """
    kind = random.choices(["flower", "concentrate", "accessory"], weights=[6, 2, 2])[0]
    payload = {
        "merchant_id": merchant_id or f"merchant-{random.randint(1, 5)}",
        "initial_stock": stock if stock is not None else random.randint(20, 200),
        "low_stock_threshold": 5,
    }
    if kind == "flower":
        grams = random.choice([1.0, 3.5, 7.0])
        payload.update(
            name=f"{random.choice(_STRAINS)} {grams:g}g",
            price=round(grams * random.uniform(10, 15), 2),
            weight_grams=grams,
            category="flower",
        )
    elif kind == "concentrate":
        payload.update(
            name=f"{random.choice(_STRAINS)} Live Resin 1g",
            price=round(random.uniform(40, 70), 2),
            weight_grams=1.0,
            category="concentrate",
            is_concentrate=True,
        )
    else:
        payload.update(
            name=random.choice(["Grinder", "Rolling Papers", "Lighter", "Stash Jar"]),
            price=round(random.uniform(2, 30), 2),
            category="accessories",
        )
    return payload


# ---------- Orders ----------


def customer_id() -> str:
    return f"cust-lt-{uuid.uuid4().hex[:8]}"


def order_data(product_ids: list[str], max_lines: int = 3) -> dict:
    """Generate a PlaceOrderRequest payload over the given products."""
    chosen = random.sample(product_ids, k=min(len(product_ids), random.randint(1, max_lines)))
    return {
        "items": [{"product_id": product_id, "quantity": random.randint(1, 2)} for product_id in chosen],
        "address": address_data(),
        "payment_method": random.choice(["cash", "card", "crypto"]),
        "speed_tier": random.choices(["standard", "express"], weights=[4, 1])[0],
    }


def cancellation_data() -> dict:
    return {
        "reason": random.choice(["Customer changed their mind", "Address unreachable", "Duplicate order"]),
        "cancelled_by": random.choice(["customer", "admin"]),
    }


# ---------- Couriers ----------


def courier_data() -> dict:
    return {
        "full_name": fake.name()[:255],
        "vehicle_type": random.choice(["bike", "scooter", "car"]),
        "phone": f"+1-{random.randint(200, 999)}-{random.randint(200, 999)}-{random.randint(1000, 9999)}",
    }


def location_near(lat: float, lng: float, spread: float = 0.01) -> dict:
    return {"lat": _jitter(lat, spread), "lng": _jitter(lng, spread)}
