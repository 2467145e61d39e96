"""Delivery fee pricing.

Pure functions: the same computation backs the pre-checkout quote and the
server-side fee at order creation, so neither may touch the data store.
The live courier count is passed in by the caller.

Rules, in order:
    subtotal >= 500                         -> free
    subtotal >= 100 and tier is not express -> free
    otherwise (5 + borough surcharge) x express x demand, rounded half-up
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

FREE_DELIVERY_THRESHOLD = Decimal("500")
FREE_STANDARD_DELIVERY_THRESHOLD = Decimal("100")
BASE_FEE = Decimal("5")
EXPRESS_MULTIPLIER = Decimal("1.3")

_BOROUGH_SURCHARGES = {
    "manhattan": Decimal("5"),
    "queens": Decimal("2"),
}


class SpeedTier(Enum):
    STANDARD = "standard"
    EXPRESS = "express"


@dataclass(frozen=True)
class FeeQuote:
    subtotal: Decimal
    base: Decimal
    borough_surcharge: Decimal
    express_multiplier: Decimal
    demand_multiplier: Decimal
    fee: Decimal
    free_reason: str | None = None

    def as_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "base": float(self.base),
            "borough_surcharge": float(self.borough_surcharge),
            "express_multiplier": float(self.express_multiplier),
            "demand_multiplier": float(self.demand_multiplier),
            "fee": float(self.fee),
            "free_reason": self.free_reason,
        }


def borough_surcharge(borough: str | None) -> Decimal:
    return _BOROUGH_SURCHARGES.get((borough or "").strip().lower(), Decimal("0"))


def demand_multiplier(online_courier_count: int) -> Decimal:
    """Scarce couriers make delivery pricier: <3 online doubles, <5 adds half."""
    if online_courier_count < 3:
        return Decimal("2")
    if online_courier_count < 5:
        return Decimal("1.5")
    return Decimal("1")


def quote(subtotal, borough: str | None, speed_tier: str, online_courier_count: int) -> FeeQuote:
    """Full fee breakdown for the given cart subtotal and delivery conditions."""
    amount = Decimal(str(subtotal))
    tier = SpeedTier(speed_tier.lower())
    express = tier == SpeedTier.EXPRESS
    surcharge = borough_surcharge(borough)
    express_mult = EXPRESS_MULTIPLIER if express else Decimal("1")
    demand_mult = demand_multiplier(online_courier_count)

    if amount >= FREE_DELIVERY_THRESHOLD:
        return FeeQuote(amount, BASE_FEE, surcharge, express_mult, demand_mult, Decimal("0"), "order_over_500")
    if amount >= FREE_STANDARD_DELIVERY_THRESHOLD and not express:
        return FeeQuote(amount, BASE_FEE, surcharge, express_mult, demand_mult, Decimal("0"), "standard_over_100")

    raw = (BASE_FEE + surcharge) * express_mult * demand_mult
    fee = raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return FeeQuote(amount, BASE_FEE, surcharge, express_mult, demand_mult, fee)


def delivery_fee(subtotal, borough: str | None, speed_tier: str, online_courier_count: int) -> float:
    return float(quote(subtotal, borough, speed_tier, online_courier_count).fee)
