"""Tests for the eligibility gate adapter selection and fake behaviour."""

import pytest
from delivery.eligibility import get_eligibility_gate, reset_eligibility_gate, set_eligibility_gate
from delivery.eligibility.fake_adapter import FakeEligibilityGate


@pytest.fixture(autouse=True)
def _reset_gate():
    reset_eligibility_gate()
    yield
    reset_eligibility_gate()


class TestGateSelection:
    def test_fake_by_default(self):
        assert isinstance(get_eligibility_gate(), FakeEligibilityGate)

    def test_singleton(self):
        assert get_eligibility_gate() is get_eligibility_gate()

    def test_unknown_adapter(self, monkeypatch):
        monkeypatch.setenv("ELIGIBILITY_ADAPTER", "acme-kyc")
        with pytest.raises(ValueError):
            get_eligibility_gate()

    def test_set_gate(self):
        gate = FakeEligibilityGate()
        set_eligibility_gate(gate)
        assert get_eligibility_gate() is gate


class TestFakeGate:
    def test_everyone_eligible_by_default(self):
        gate = FakeEligibilityGate()
        assert gate.is_eligible("cust-001") is True
        assert gate.is_guest_attested("guest-1") is True

    def test_blocked_customer(self):
        gate = FakeEligibilityGate()
        gate.block("cust-minor")
        assert gate.is_eligible("cust-minor") is False

    def test_configure_guests_unattested(self):
        gate = FakeEligibilityGate()
        gate.configure(guests_attested=False)
        assert gate.is_guest_attested("guest-1") is False
        assert gate.is_eligible("cust-001") is True

    def test_records_calls(self):
        gate = FakeEligibilityGate()
        gate.is_eligible("cust-001")
        assert gate.calls == ["cust-001"]
