"""
Guardian and beneficiary registries in isolation.
"""

import pytest

from afterlife.protocol import BeneficiaryRegistry, ConfirmationPolicy, GuardianRegistry, VestingType
from afterlife.protocol.errors import (
    AllocationExceeded,
    AlreadyConfirmed,
    AlreadyExists,
    ConfirmationInProgress,
    GuardianFixed,
    InvalidAmount,
    NotFound,
    NotGuardian,
)


class TestGuardianRegistry:
    def test_add_and_list_in_order(self, make_address):
        registry = GuardianRegistry()
        a, b = make_address(), make_address()
        registry.add("Alice", a)
        registry.add("Bob", b, is_fixed=True)
        assert [g.address for g in registry.list()] == [a, b]
        assert registry.get(b).is_fixed

    def test_duplicate_rejected(self, guardian):
        registry = GuardianRegistry()
        registry.add("Alice", guardian)
        with pytest.raises(AlreadyExists, match="Exists"):
            registry.add("Alice again", guardian)

    def test_remove_unknown_rejected(self, guardian):
        with pytest.raises(NotFound):
            GuardianRegistry().remove(guardian)

    def test_fixed_guardian_not_removable(self, guardian):
        registry = GuardianRegistry()
        registry.add("Safe", guardian, is_fixed=True)
        with pytest.raises(GuardianFixed):
            registry.remove(guardian)

    def test_removal_blocked_once_confirmations_started(self, make_address):
        registry = GuardianRegistry()
        a, b = make_address(), make_address()
        registry.add("Alice", a)
        registry.add("Bob", b)
        registry.record_confirmation(a)
        with pytest.raises(ConfirmationInProgress):
            registry.remove(b)
        registry.clear_confirmations()
        registry.remove(b)
        assert b not in registry

    def test_confirmation_tally(self, make_address, stranger):
        registry = GuardianRegistry()
        a = make_address()
        registry.add("Alice", a)
        assert registry.record_confirmation(a) == 1
        with pytest.raises(AlreadyConfirmed):
            registry.record_confirmation(a)
        with pytest.raises(NotGuardian):
            registry.record_confirmation(stranger)


class TestConfirmationPolicy:
    def test_single_authority(self):
        policy = ConfirmationPolicy.single_authority()
        assert policy.is_single_authority
        assert policy.is_met(1, 5)
        assert not policy.is_met(0, 5)

    def test_threshold_caps_at_guardian_count(self):
        policy = ConfirmationPolicy.threshold(3)
        assert not policy.is_met(2, 5)
        assert policy.is_met(3, 5)
        assert policy.is_met(2, 2)

    def test_zero_required_rejected(self):
        with pytest.raises(ValueError):
            ConfirmationPolicy(required=0)


class TestBeneficiaryRegistry:
    def test_allocation_may_reach_exactly_100_percent(self, make_address):
        registry = BeneficiaryRegistry()
        registry.add("Sarah", make_address(), 6000)
        registry.add("Kids", make_address(), 3000)
        registry.add("Charity", make_address(), 1000)
        assert registry.total_allocation == 10_000

    def test_allocation_exceeded(self, make_address):
        registry = BeneficiaryRegistry()
        registry.add("Sarah", make_address(), 6000)
        with pytest.raises(AllocationExceeded):
            registry.add("Kids", make_address(), 4001)
        assert registry.total_allocation == 6000
        assert len(registry) == 1

    def test_duplicate_rejected(self, beneficiary):
        registry = BeneficiaryRegistry()
        registry.add("Sarah", beneficiary, 100)
        with pytest.raises(AlreadyExists):
            registry.add("Sarah", beneficiary, 100)

    def test_negative_inputs_rejected(self, beneficiary):
        registry = BeneficiaryRegistry()
        with pytest.raises(InvalidAmount):
            registry.add("Sarah", beneficiary, -1)
        with pytest.raises(InvalidAmount):
            registry.add("Sarah", beneficiary, 100, VestingType.LINEAR, -5)

    def test_update_allocation_clamps_to_headroom(self, make_address):
        registry = BeneficiaryRegistry()
        a, b = make_address(), make_address()
        registry.add("A", a, 7000)
        registry.add("B", b, 1000)
        assert registry.update_allocation(b, 9000) == 3000
        assert registry.total_allocation == 10_000
        assert registry.update_allocation(b, -50) == 0
        assert registry.total_allocation == 7000

    def test_update_unknown_rejected(self, beneficiary):
        with pytest.raises(NotFound):
            BeneficiaryRegistry().update_allocation(beneficiary, 10)

    def test_remove_frees_allocation(self, beneficiary):
        registry = BeneficiaryRegistry()
        registry.add("Sarah", beneficiary, 5000, VestingType.CLIFF, 60)
        removed = registry.remove(beneficiary)
        assert removed.vesting_type is VestingType.CLIFF
        assert registry.total_allocation == 0

    def test_vesting_type_codes(self):
        assert VestingType.LINEAR.code == 0
        assert VestingType.from_code(1) is VestingType.CLIFF
