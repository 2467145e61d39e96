"""Fake eligibility gate for development and tests."""

from delivery.eligibility.port import EligibilityGate


class FakeEligibilityGate(EligibilityGate):
    """Everyone is eligible unless blocked."""

    def __init__(self):
        self.eligible_by_default = True
        self.guests_attested = True
        self.blocked: set[str] = set()
        self.calls: list[str] = []

    def configure(self, eligible_by_default: bool = True, guests_attested: bool = True, blocked=()):
        self.eligible_by_default = eligible_by_default
        self.guests_attested = guests_attested
        self.blocked = set(blocked)

    def block(self, identifier: str) -> None:
        self.blocked.add(identifier)

    def is_eligible(self, customer_id: str) -> bool:
        self.calls.append(customer_id)
        if customer_id in self.blocked:
            return False
        return self.eligible_by_default

    def is_guest_attested(self, guest_reference: str) -> bool:
        self.calls.append(guest_reference)
        if guest_reference in self.blocked:
            return False
        return self.guests_attested
