"""Eligibility port — the identity system's answer to "may this buyer transact".

The delivery core never verifies identity or age itself.
"""

from abc import ABC, abstractmethod


class EligibilityGate(ABC):
    @abstractmethod
    def is_eligible(self, customer_id: str) -> bool:
        """True when the registered customer is verified to purchase."""
        ...

    @abstractmethod
    def is_guest_attested(self, guest_reference: str) -> bool:
        """True when a guest checkout carries a completed eligibility attestation."""
        ...
