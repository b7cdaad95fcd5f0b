"""
AfterLife — Protocol State Machine
===================================
One ``ProtocolInstance`` per owner address, hosted by a ``ProtocolHost``.

Lifecycle:
  - Owner registers with an inactivity threshold (state ACTIVE)
  - Owner proves life periodically; guardians and beneficiaries are edited
    only while the owner is alive
  - Once the threshold is breached a guardian confirms inactivity
    (state EXECUTING); the vault balance is snapshotted and vesting starts
  - Beneficiaries claim their vested share; when every entitlement is paid
    out the instance is COMPLETED

Every mutating call runs under the instance lock and checks all of its
preconditions before writing, so a rejected call leaves nothing behind.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from algosdk import encoding

from ..config import MIN_INACTIVITY_SECONDS, ProtocolConfig, load_config
from .beneficiaries import Beneficiary, BeneficiaryRegistry, VestingType
from .clock import HeartbeatTracker, ProtocolState, system_clock
from .errors import (
    AlreadyDead,
    AlreadyRegistered,
    InsufficientVaultBalance,
    InvalidAddress,
    InvalidAmount,
    NotGuardian,
    NotOwner,
    NotRegistered,
    OwnerActive,
    ProtocolActive,
    ProtocolDead,
    ProtocolError,
    ReviveUnavailable,
    ThresholdTooShort,
)
from .guardians import ConfirmationPolicy, Guardian, GuardianRegistry
from .vesting import ClaimableAmount, ClaimReceipt, Vault, VestingEngine, is_fully_claimed, quote

logger = logging.getLogger("afterlife.protocol")


def require_address(address: str) -> str:
    if not isinstance(address, str) or not encoding.is_valid_address(address):
        raise InvalidAddress(f"Invalid Address: {address!r}")
    return address


@dataclass
class ProtocolInstance:
    owner: str
    heartbeat: HeartbeatTracker
    state: ProtocolState = ProtocolState.ACTIVE
    is_dead: bool = False
    death_declaration_time: int = 0
    vesting_start_time: int = 0
    vault: Vault = field(default_factory=Vault)
    guardians: GuardianRegistry = field(default_factory=GuardianRegistry)
    beneficiaries: BeneficiaryRegistry = field(default_factory=BeneficiaryRegistry)

    @property
    def last_heartbeat(self) -> int:
        return self.heartbeat.last_heartbeat

    @property
    def inactivity_threshold(self) -> int:
        return self.heartbeat.inactivity_threshold

    @property
    def total_allocation(self) -> int:
        return self.beneficiaries.total_allocation

    def current_state(self, now: int) -> ProtocolState:
        """Canonical state once dead, otherwise the ledger-time derived state."""
        if self.is_dead:
            return self.state
        return self.heartbeat.derived_state(now)

    def all_claimed(self) -> bool:
        snapshot = self.vault.initial_balance
        return all(is_fully_claimed(b, snapshot) for b in self.beneficiaries)

    def snapshot(self, now: int) -> dict:
        return {
            "owner": self.owner,
            "is_registered": True,
            "state": self.current_state(now).value,
            "last_heartbeat": self.last_heartbeat,
            "inactivity_threshold": self.inactivity_threshold,
            "is_dead": self.is_dead,
            "death_declaration_time": self.death_declaration_time,
            "vesting_start_time": self.vesting_start_time,
            "vault_balance": self.vault.initial_balance,
            "current_vault_balance": self.vault.current_balance,
            "fees_collected": self.vault.fees_collected,
            "total_allocation": self.total_allocation,
            "guardian_count": len(self.guardians),
            "beneficiary_count": len(self.beneficiaries),
            "confirmations": len(self.guardians.confirmations),
            "time_remaining": 0 if self.is_dead else self.heartbeat.time_remaining(now),
        }

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "state": self.state.value,
            "last_heartbeat": self.last_heartbeat,
            "inactivity_threshold": self.inactivity_threshold,
            "is_dead": self.is_dead,
            "death_declaration_time": self.death_declaration_time,
            "vesting_start_time": self.vesting_start_time,
            "vault": self.vault.to_dict(),
            **self.guardians.to_dict(),
            **self.beneficiaries.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProtocolInstance":
        return cls(
            owner=data["owner"],
            heartbeat=HeartbeatTracker(data["last_heartbeat"], data["inactivity_threshold"]),
            state=ProtocolState(data.get("state", ProtocolState.ACTIVE.value)),
            is_dead=data.get("is_dead", False),
            death_declaration_time=data.get("death_declaration_time", 0),
            vesting_start_time=data.get("vesting_start_time", 0),
            vault=Vault.from_dict(data.get("vault", {})),
            guardians=GuardianRegistry.from_dict(data),
            beneficiaries=BeneficiaryRegistry.from_dict(data),
        )


class ProtocolHost:
    """
    Multi-tenant host: indexes protocol instances by owner address and
    serializes every operation on an instance. Without an explicit config
    the policy is read from the environment via ``load_config()``.
    """

    def __init__(self, config: Optional[ProtocolConfig] = None,
                 clock: Callable[[], int] = system_clock):
        self.config = config or load_config()
        self.clock = clock
        self.policy = ConfirmationPolicy(required=self.config.confirmations_required)
        self.engine = VestingEngine(fee_bps=self.config.platform_fee_bps)
        self._instances: Dict[str, ProtocolInstance] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._index_lock = threading.Lock()

    # ── Internals ─────────────────────────────────────────────────────────────
    def _lookup(self, owner: str):
        with self._index_lock:
            instance = self._instances.get(owner)
            if instance is None:
                raise NotRegistered()
            return instance, self._locks[owner]

    @staticmethod
    def _require_owner(instance: ProtocolInstance, sender: str):
        if sender != instance.owner:
            raise NotOwner()

    @staticmethod
    def _require_alive(instance: ProtocolInstance):
        if instance.is_dead:
            raise ProtocolDead()

    def _run(self, owner: str, op: str, fn):
        """Run ``fn(instance, now)`` atomically under the owner's lock."""
        instance, lock = self._lookup(owner)
        with lock:
            try:
                return fn(instance, self.clock())
            except ProtocolError as exc:
                logger.warning("%s rejected for %s: %s (%s)", op, owner, type(exc).__name__, exc)
                raise

    def adopt(self, instance: ProtocolInstance):
        """Install a previously persisted instance."""
        with self._index_lock:
            self._instances[instance.owner] = instance
            self._locks.setdefault(instance.owner, threading.Lock())

    def instances(self) -> List[ProtocolInstance]:
        with self._index_lock:
            return list(self._instances.values())

    # ─────────────────────────────────────────────────────────────────────────
    # 1. REGISTRATION
    # ─────────────────────────────────────────────────────────────────────────
    def register(self, sender: str, threshold_seconds: int) -> ProtocolInstance:
        require_address(sender)
        if threshold_seconds < MIN_INACTIVITY_SECONDS:
            raise ThresholdTooShort()
        with self._index_lock:
            if sender in self._instances:
                raise AlreadyRegistered()
            now = self.clock()
            instance = ProtocolInstance(
                owner=sender,
                heartbeat=HeartbeatTracker(last_heartbeat=now, inactivity_threshold=threshold_seconds),
            )
            self._instances[sender] = instance
            self._locks[sender] = threading.Lock()
        logger.info("registered %s threshold=%ds", sender, threshold_seconds)
        return instance

    def is_owner(self, address: str) -> bool:
        with self._index_lock:
            return address in self._instances

    # ─────────────────────────────────────────────────────────────────────────
    # 2. HEARTBEAT
    # ─────────────────────────────────────────────────────────────────────────
    def prove_life(self, owner: str, sender: str) -> int:
        """Owner resets the inactivity clock. Blocked after death."""
        def apply(instance, now):
            self._require_owner(instance, sender)
            if instance.is_dead:
                raise AlreadyDead()
            instance.guardians.clear_confirmations()
            stamp = instance.heartbeat.beat(now)
            logger.info("heartbeat %s at %d", owner, stamp)
            return stamp
        return self._run(owner, "prove_life", apply)

    def update_inactivity_threshold(self, owner: str, sender: str, seconds: int) -> int:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            if seconds < MIN_INACTIVITY_SECONDS:
                raise ThresholdTooShort()
            instance.guardians.clear_confirmations()
            instance.heartbeat.inactivity_threshold = seconds
            logger.info("threshold %s -> %ds", owner, seconds)
            return seconds
        return self._run(owner, "update_inactivity_threshold", apply)

    # ─────────────────────────────────────────────────────────────────────────
    # 3. GUARDIANS
    # ─────────────────────────────────────────────────────────────────────────
    def add_guardian(self, owner: str, sender: str, name: str, address: str,
                     is_fixed: bool = False) -> Guardian:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            require_address(address)
            return instance.guardians.add(name, address, is_fixed)
        return self._run(owner, "add_guardian", apply)

    def remove_guardian(self, owner: str, sender: str, address: str) -> Guardian:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            return instance.guardians.remove(address)
        return self._run(owner, "remove_guardian", apply)

    def confirm_inactivity(self, owner: str, sender: str) -> ProtocolState:
        """
        Guardian confirms the owner has gone silent past the threshold.
        Declares death once the confirmation policy is met.
        """
        def apply(instance, now):
            if sender not in instance.guardians:
                raise NotGuardian()
            if instance.is_dead:
                raise AlreadyDead()
            if not instance.heartbeat.is_overdue(now):
                raise OwnerActive()
            tally = instance.guardians.record_confirmation(sender)
            if not instance.guardians.is_confirmed(self.policy):
                logger.info("inactivity confirmation %d/%d for %s by %s",
                            tally, self.policy.required, owner, sender)
                return instance.current_state(now)
            self._declare_death(instance, now)
            return instance.state
        return self._run(owner, "confirm_inactivity", apply)

    def _declare_death(self, instance: ProtocolInstance, now: int):
        instance.is_dead = True
        instance.death_declaration_time = now
        instance.vesting_start_time = now
        if self.config.enable_revive:
            instance.vesting_start_time = now + self.config.revive_grace_seconds
        instance.vault.initial_balance = instance.vault.current_balance
        instance.state = ProtocolState.EXECUTING
        logger.info("death declared for %s at %d, vault snapshot=%d",
                    instance.owner, now, instance.vault.initial_balance)
        if instance.all_claimed():
            instance.state = ProtocolState.COMPLETED
            logger.info("nothing to distribute for %s, protocol completed", instance.owner)

    # ─────────────────────────────────────────────────────────────────────────
    # 4. BENEFICIARIES
    # ─────────────────────────────────────────────────────────────────────────
    def add_beneficiary(self, owner: str, sender: str, name: str, address: str,
                        allocation_bps: int, vesting_type: VestingType = VestingType.LINEAR,
                        duration_seconds: int = 0) -> Beneficiary:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            require_address(address)
            return instance.beneficiaries.add(name, address, allocation_bps, vesting_type, duration_seconds)
        return self._run(owner, "add_beneficiary", apply)

    def remove_beneficiary(self, owner: str, sender: str, address: str) -> Beneficiary:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            return instance.beneficiaries.remove(address)
        return self._run(owner, "remove_beneficiary", apply)

    def update_allocation(self, owner: str, sender: str, address: str, new_bps: int) -> int:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            return instance.beneficiaries.update_allocation(address, new_bps)
        return self._run(owner, "update_allocation", apply)

    # ─────────────────────────────────────────────────────────────────────────
    # 5. VAULT
    # ─────────────────────────────────────────────────────────────────────────
    def deposit(self, owner: str, sender: str, amount: int) -> int:
        def apply(instance, now):
            self._require_owner(instance, sender)
            if amount <= 0:
                raise InvalidAmount()
            instance.vault.current_balance += amount
            return instance.vault.current_balance
        return self._run(owner, "deposit", apply)

    def withdraw(self, owner: str, sender: str, amount: int) -> int:
        def apply(instance, now):
            self._require_owner(instance, sender)
            self._require_alive(instance)
            if amount <= 0:
                raise InvalidAmount()
            if amount > instance.vault.current_balance:
                raise InsufficientVaultBalance()
            instance.vault.current_balance -= amount
            return instance.vault.current_balance
        return self._run(owner, "withdraw", apply)

    # ─────────────────────────────────────────────────────────────────────────
    # 6. CLAIM
    # ─────────────────────────────────────────────────────────────────────────
    def claim(self, owner: str, sender: str) -> ClaimReceipt:
        """Beneficiary pulls everything vested so far, less the platform fee."""
        def apply(instance, now):
            if not instance.is_dead:
                raise ProtocolActive()
            beneficiary = instance.beneficiaries.get(sender)
            receipt = self.engine.claim(beneficiary, instance.vault, instance.vesting_start_time, now)
            if instance.state is ProtocolState.EXECUTING and instance.all_claimed():
                instance.state = ProtocolState.COMPLETED
                logger.info("all entitlements paid out for %s, protocol completed", owner)
            return receipt
        return self._run(owner, "claim", apply)

    # ─────────────────────────────────────────────────────────────────────────
    # 7. REVIVE (capability-gated)
    # ─────────────────────────────────────────────────────────────────────────
    def _revive_window_open(self, instance: ProtocolInstance, now: int) -> bool:
        return (
            self.config.enable_revive
            and instance.is_dead
            and now - instance.death_declaration_time < self.config.revive_grace_seconds
        )

    def revive(self, owner: str, sender: str) -> int:
        """Owner undoes a death declaration inside the grace window."""
        def apply(instance, now):
            self._require_owner(instance, sender)
            if not self.config.enable_revive:
                raise ReviveUnavailable()
            if not instance.is_dead:
                raise ProtocolActive()
            if not self._revive_window_open(instance, now):
                raise ReviveUnavailable()
            instance.is_dead = False
            instance.state = ProtocolState.ACTIVE
            instance.death_declaration_time = 0
            instance.vesting_start_time = 0
            instance.vault.initial_balance = 0
            instance.guardians.clear_confirmations()
            stamp = instance.heartbeat.beat(now)
            logger.info("owner %s revived at %d", owner, stamp)
            return stamp
        return self._run(owner, "revive", apply)

    def get_revive_status(self, owner: str) -> dict:
        def read(instance, now):
            can_revive = self._revive_window_open(instance, now)
            remaining = 0
            if can_revive:
                remaining = instance.death_declaration_time + self.config.revive_grace_seconds - now
            return {"can_revive": can_revive, "time_remaining": remaining}
        return self._run(owner, "get_revive_status", read)

    # ─────────────────────────────────────────────────────────────────────────
    # 8. READ-ONLY HELPERS
    # ─────────────────────────────────────────────────────────────────────────
    def get_protocol_state(self, owner: str) -> dict:
        return self._run(owner, "get_protocol_state", lambda instance, now: instance.snapshot(now))

    def get_derived_state(self, owner: str) -> ProtocolState:
        return self._run(owner, "get_derived_state", lambda instance, now: instance.current_state(now))

    def get_time_remaining(self, owner: str) -> int:
        """Seconds until the inactivity deadline. Returns 0 if past deadline or dead."""
        def read(instance, now):
            return 0 if instance.is_dead else instance.heartbeat.time_remaining(now)
        return self._run(owner, "get_time_remaining", read)

    def get_owner_balance(self, owner: str) -> int:
        return self._run(owner, "get_owner_balance", lambda instance, now: instance.vault.current_balance)

    def get_claimable_amount(self, owner: str, beneficiary: str) -> ClaimableAmount:
        """
        Before death nothing is claimable; the entitlement shown is projected
        from the live vault balance.
        """
        def read(instance, now):
            b = instance.beneficiaries.get(beneficiary)
            if not instance.is_dead:
                projected = quote(b, instance.vault.current_balance, now, now)
                return ClaimableAmount(
                    claimable=0,
                    total_entitlement=projected.total_entitlement,
                    already_claimed=b.amount_claimed,
                )
            return quote(b, instance.vault.initial_balance, instance.vesting_start_time, now)
        return self._run(owner, "get_claimable_amount", read)

    def get_guardians(self, owner: str) -> List[Guardian]:
        return self._run(owner, "get_guardians", lambda instance, now: instance.guardians.list())

    def get_beneficiaries(self, owner: str) -> List[Beneficiary]:
        return self._run(owner, "get_beneficiaries", lambda instance, now: instance.beneficiaries.list())
