"""
Vesting and claim engine.

    total_entitlement = snapshot * allocation_bps / 10000
    vested_fraction   = LINEAR: min(elapsed / duration, 1)
                        CLIFF:  1 if elapsed >= duration else 0
    vested_amount     = total_entitlement * vested_fraction
    claimable         = max(0, vested_amount - amount_claimed)

All amounts are integer microALGO. The product is computed as one rational
and floored once, so a fully vested beneficiary receives their exact
entitlement with no dust left behind. ``amount_claimed`` is always the gross
amount taken from the vault; the platform fee is withheld from the payout.
"""

import logging
import math
from dataclasses import dataclass
from fractions import Fraction

from ..config import BPS_DENOMINATOR, DEFAULT_PLATFORM_FEE_BPS
from .beneficiaries import Beneficiary, VestingType
from .errors import InsufficientVaultBalance, NothingClaimable

logger = logging.getLogger("afterlife.vesting")


@dataclass
class Vault:
    initial_balance: int = 0    # snapshot taken at death declaration
    current_balance: int = 0
    fees_collected: int = 0

    def to_dict(self) -> dict:
        return {
            "initial_balance": self.initial_balance,
            "current_balance": self.current_balance,
            "fees_collected": self.fees_collected,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Vault":
        return cls(**{k: data.get(k, 0) for k in ("initial_balance", "current_balance", "fees_collected")})


@dataclass(frozen=True)
class ClaimableAmount:
    claimable: int
    total_entitlement: int
    already_claimed: int
    vested_amount: int = 0

    def to_dict(self) -> dict:
        return {
            "claimable": self.claimable,
            "total_entitlement": self.total_entitlement,
            "already_claimed": self.already_claimed,
            "vested_amount": self.vested_amount,
        }


@dataclass(frozen=True)
class ClaimReceipt:
    beneficiary: str
    gross: int
    fee: int
    net: int
    amount_claimed: int
    timestamp: int


def total_entitlement(snapshot: int, allocation_bps: int) -> int:
    return snapshot * allocation_bps // BPS_DENOMINATOR


def vested_fraction(vesting_type: VestingType, duration: int, elapsed: int) -> Fraction:
    elapsed = max(0, elapsed)
    if elapsed >= duration:
        return Fraction(1)
    if vesting_type is VestingType.CLIFF:
        return Fraction(0)
    return Fraction(elapsed, duration)


def vested_amount(snapshot: int, beneficiary: Beneficiary, elapsed: int) -> int:
    fraction = vested_fraction(beneficiary.vesting_type, beneficiary.vesting_duration, elapsed)
    return math.floor(Fraction(snapshot * beneficiary.allocation_bps, BPS_DENOMINATOR) * fraction)


def quote(beneficiary: Beneficiary, snapshot: int, vesting_start: int, now: int) -> ClaimableAmount:
    """Entitlement-to-date for one beneficiary; never negative."""
    if now < vesting_start:
        vested = 0
    else:
        vested = vested_amount(snapshot, beneficiary, now - vesting_start)
    return ClaimableAmount(
        claimable=max(0, vested - beneficiary.amount_claimed),
        total_entitlement=total_entitlement(snapshot, beneficiary.allocation_bps),
        already_claimed=beneficiary.amount_claimed,
        vested_amount=vested,
    )


def split_fee(gross: int, fee_bps: int) -> tuple:
    """Return ``(fee, net)`` for a gross payout."""
    fee = gross * fee_bps // BPS_DENOMINATOR
    return fee, gross - fee


def is_fully_claimed(beneficiary: Beneficiary, snapshot: int) -> bool:
    return beneficiary.amount_claimed >= total_entitlement(snapshot, beneficiary.allocation_bps)


class VestingEngine:
    """Settles claims against a vault. Never touches the allocation table."""

    def __init__(self, fee_bps: int = DEFAULT_PLATFORM_FEE_BPS):
        self.fee_bps = fee_bps

    def claim(self, beneficiary: Beneficiary, vault: Vault, vesting_start: int, now: int) -> ClaimReceipt:
        amount = quote(beneficiary, vault.initial_balance, vesting_start, now)
        if amount.claimable == 0:
            raise NothingClaimable()
        if amount.claimable > vault.current_balance:
            raise InsufficientVaultBalance()

        fee, net = split_fee(amount.claimable, self.fee_bps)
        vault.current_balance -= amount.claimable
        vault.fees_collected += fee
        beneficiary.amount_claimed += amount.claimable

        logger.info(
            "claim %s gross=%d fee=%d net=%d claimed=%d/%d",
            beneficiary.address, amount.claimable, fee, net,
            beneficiary.amount_claimed, amount.total_entitlement,
        )
        return ClaimReceipt(
            beneficiary=beneficiary.address,
            gross=amount.claimable,
            fee=fee,
            net=net,
            amount_claimed=beneficiary.amount_claimed,
            timestamp=now,
        )
