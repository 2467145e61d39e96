"""Eligibility gate — pluggable identity/age verification lookup."""

import os

_gate_instance = None


def get_eligibility_gate():
    """Return the configured eligibility gate (singleton).

    Uses FakeEligibilityGate by default. Select another adapter with the
    ELIGIBILITY_ADAPTER environment variable.
    """
    global _gate_instance
    if _gate_instance is None:
        adapter = os.environ.get("ELIGIBILITY_ADAPTER", "fake")
        if adapter == "fake":
            from delivery.eligibility.fake_adapter import FakeEligibilityGate

            _gate_instance = FakeEligibilityGate()
        else:
            raise ValueError(f"Unknown eligibility adapter: {adapter}")
    return _gate_instance


def set_eligibility_gate(gate):
    global _gate_instance
    _gate_instance = gate


def reset_eligibility_gate():
    """Reset the gate singleton (useful for testing)."""
    global _gate_instance
    _gate_instance = None
