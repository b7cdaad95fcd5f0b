"""
Beneficiary registry and allocation table.

Allocations are integer basis points; the table total never exceeds 10000.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..config import BPS_DENOMINATOR
from .errors import AllocationExceeded, AlreadyExists, InvalidAmount, NotBeneficiary, NotFound


class VestingType(str, Enum):
    LINEAR = "LINEAR"
    CLIFF = "CLIFF"

    @property
    def code(self) -> int:
        """uint8 used by the on-chain contract."""
        return 0 if self is VestingType.LINEAR else 1

    @classmethod
    def from_code(cls, code: int) -> "VestingType":
        return cls.LINEAR if code == 0 else cls.CLIFF


@dataclass
class Beneficiary:
    name: str
    address: str
    allocation_bps: int
    vesting_type: VestingType = VestingType.LINEAR
    vesting_duration: int = 0
    amount_claimed: int = 0     # gross, before the platform fee

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "allocation_bps": self.allocation_bps,
            "vesting_type": self.vesting_type.value,
            "vesting_duration": self.vesting_duration,
            "amount_claimed": self.amount_claimed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Beneficiary":
        return cls(
            name=data["name"],
            address=data["address"],
            allocation_bps=data["allocation_bps"],
            vesting_type=VestingType(data.get("vesting_type", VestingType.LINEAR.value)),
            vesting_duration=data.get("vesting_duration", 0),
            amount_claimed=data.get("amount_claimed", 0),
        )


class BeneficiaryRegistry:
    def __init__(self, beneficiaries: Optional[Iterable[Beneficiary]] = None):
        self._beneficiaries: Dict[str, Beneficiary] = {}
        for b in beneficiaries or ():
            self._beneficiaries[b.address] = b

    def __len__(self) -> int:
        return len(self._beneficiaries)

    def __contains__(self, address: str) -> bool:
        return address in self._beneficiaries

    def __iter__(self):
        return iter(list(self._beneficiaries.values()))

    @property
    def total_allocation(self) -> int:
        return sum(b.allocation_bps for b in self._beneficiaries.values())

    def allocation_of_others(self, address: str) -> int:
        return sum(
            b.allocation_bps for a, b in self._beneficiaries.items() if a != address
        )

    def get(self, address: str) -> Beneficiary:
        try:
            return self._beneficiaries[address]
        except KeyError:
            raise NotBeneficiary() from None

    def list(self) -> List[Beneficiary]:
        return list(self._beneficiaries.values())

    def add(
        self,
        name: str,
        address: str,
        allocation_bps: int,
        vesting_type: VestingType = VestingType.LINEAR,
        vesting_duration: int = 0,
    ) -> Beneficiary:
        if allocation_bps < 0 or vesting_duration < 0:
            raise InvalidAmount()
        if address in self._beneficiaries:
            raise AlreadyExists()
        if self.total_allocation + allocation_bps > BPS_DENOMINATOR:
            raise AllocationExceeded()
        beneficiary = Beneficiary(
            name=name,
            address=address,
            allocation_bps=allocation_bps,
            vesting_type=VestingType(vesting_type),
            vesting_duration=vesting_duration,
        )
        self._beneficiaries[address] = beneficiary
        return beneficiary

    def remove(self, address: str) -> Beneficiary:
        if address not in self._beneficiaries:
            raise NotFound(f"Beneficiary {address} Not Found")
        return self._beneficiaries.pop(address)

    def update_allocation(self, address: str, new_bps: int) -> int:
        """Set a new allocation, clamped to ``[0, 10000 - others]``.

        Returns the allocation actually stored.
        """
        if address not in self._beneficiaries:
            raise NotFound(f"Beneficiary {address} Not Found")
        ceiling = BPS_DENOMINATOR - self.allocation_of_others(address)
        clamped = max(0, min(new_bps, ceiling))
        self._beneficiaries[address].allocation_bps = clamped
        return clamped

    def to_dict(self) -> dict:
        return {"beneficiaries": [b.to_dict() for b in self._beneficiaries.values()]}

    @classmethod
    def from_dict(cls, data: dict) -> "BeneficiaryRegistry":
        return cls(Beneficiary.from_dict(b) for b in data.get("beneficiaries", []))
