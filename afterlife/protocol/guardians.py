"""
Guardian registry and inactivity-confirmation tally.

Any registered guardian may confirm the owner's inactivity. Under the
default ``ConfirmationPolicy.single_authority()`` one confirmation declares
death; ``ConfirmationPolicy.threshold(m)`` waits for ``m`` distinct guardians
(capped at the number of guardians registered).
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import (
    AlreadyConfirmed,
    AlreadyExists,
    ConfirmationInProgress,
    GuardianFixed,
    NotFound,
    NotGuardian,
)


@dataclass
class Guardian:
    name: str
    address: str
    is_fixed: bool = False

    def to_dict(self) -> dict:
        return {"name": self.name, "address": self.address, "is_fixed": self.is_fixed}

    @classmethod
    def from_dict(cls, data: dict) -> "Guardian":
        return cls(name=data["name"], address=data["address"], is_fixed=data.get("is_fixed", False))


@dataclass(frozen=True)
class ConfirmationPolicy:
    required: int = 1

    def __post_init__(self):
        if self.required < 1:
            raise ValueError("a confirmation policy needs at least one guardian")

    @classmethod
    def single_authority(cls) -> "ConfirmationPolicy":
        return cls(required=1)

    @classmethod
    def threshold(cls, m: int) -> "ConfirmationPolicy":
        return cls(required=m)

    @property
    def is_single_authority(self) -> bool:
        return self.required == 1

    def is_met(self, confirmations: int, guardian_count: int) -> bool:
        return confirmations >= max(1, min(self.required, guardian_count))


class GuardianRegistry:
    def __init__(self, guardians: Optional[Iterable[Guardian]] = None,
                 confirmations: Optional[Iterable[str]] = None):
        self._guardians: Dict[str, Guardian] = {}
        for g in guardians or ():
            self._guardians[g.address] = g
        self._confirmations: List[str] = list(confirmations or ())

    def __len__(self) -> int:
        return len(self._guardians)

    def __contains__(self, address: str) -> bool:
        return address in self._guardians

    def get(self, address: str) -> Guardian:
        try:
            return self._guardians[address]
        except KeyError:
            raise NotFound(f"Guardian {address} Not Found") from None

    def list(self) -> List[Guardian]:
        return list(self._guardians.values())

    def add(self, name: str, address: str, is_fixed: bool = False) -> Guardian:
        if address in self._guardians:
            raise AlreadyExists()
        guardian = Guardian(name=name, address=address, is_fixed=is_fixed)
        self._guardians[address] = guardian
        return guardian

    def remove(self, address: str) -> Guardian:
        guardian = self.get(address)
        if guardian.is_fixed:
            raise GuardianFixed()
        if self._confirmations:
            raise ConfirmationInProgress()
        return self._guardians.pop(address)

    # ── Confirmation tally ────────────────────────────────────────────────────
    @property
    def confirmations(self) -> tuple:
        return tuple(self._confirmations)

    def record_confirmation(self, address: str) -> int:
        if address not in self._guardians:
            raise NotGuardian()
        if address in self._confirmations:
            raise AlreadyConfirmed()
        self._confirmations.append(address)
        return len(self._confirmations)

    def clear_confirmations(self):
        self._confirmations.clear()

    def is_confirmed(self, policy: ConfirmationPolicy) -> bool:
        return policy.is_met(len(self._confirmations), len(self._guardians))

    def to_dict(self) -> dict:
        return {
            "guardians": [g.to_dict() for g in self._guardians.values()],
            "confirmations": list(self._confirmations),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GuardianRegistry":
        return cls(
            guardians=[Guardian.from_dict(g) for g in data.get("guardians", [])],
            confirmations=data.get("confirmations", []),
        )
