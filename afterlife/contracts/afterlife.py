"""
AfterLife — Dead-Man's-Switch Inheritance Contract
===================================================
Built with Beaker 1.x + PyTEAL for Algorand Testnet

Architecture:
  - Owner creates the app with an inactivity threshold (one app per owner)
  - Owner periodically proves life; guardians and beneficiaries live in boxes
  - Once the threshold elapses any registered guardian confirms inactivity
  - The vault balance is snapshotted and each beneficiary's share vests
    LINEAR or CLIFF from the death declaration
  - Beneficiaries pull vested amounts; a platform fee is withheld per claim

Security:
  - Only owner can prove life / edit registries / withdraw
  - Registries are frozen once death is declared; only shares that floor
    to 0 microALGO can be retired afterwards (release_share)
  - Allocations never exceed 10000 basis points in total
  - amount_claimed tracks the gross payout, so re-claims only pay new vesting
"""

from beaker import Application, GlobalStateValue
from beaker.lib.storage import BoxMapping
from pyteal import (
    Assert,
    Bytes,
    Cond,
    Expr,
    Global,
    If,
    InnerTxnBuilder,
    Int,
    Not,
    Pop,
    ScratchVar,
    Seq,
    TealType,
    Txn,
    TxnField,
    TxnType,
    WideRatio,
    abi,
)

from afterlife.config import BPS_DENOMINATOR, DEFAULT_PLATFORM_FEE_BPS, MIN_INACTIVITY_SECONDS

PLATFORM_FEE_BPS = DEFAULT_PLATFORM_FEE_BPS

STATE_ACTIVE = 0
STATE_EXECUTING = 1
STATE_COMPLETED = 2

VESTING_LINEAR = 0
VESTING_CLIFF = 1

ERR_NOT_OWNER = "Not Owner"
ERR_PROTOCOL_DEAD = "Protocol Dead"


class GuardianRecord(abi.NamedTuple):
    name: abi.Field[abi.String]
    is_fixed: abi.Field[abi.Bool]


class BeneficiaryRecord(abi.NamedTuple):
    name: abi.Field[abi.String]
    allocation_bps: abi.Field[abi.Uint64]
    vesting_type: abi.Field[abi.Uint8]
    vesting_duration: abi.Field[abi.Uint64]
    amount_claimed: abi.Field[abi.Uint64]


class ClaimableAmount(abi.NamedTuple):
    claimable: abi.Field[abi.Uint64]
    total_entitlement: abi.Field[abi.Uint64]
    already_claimed: abi.Field[abi.Uint64]


# ─────────────────────────────────────────────────────────────────────────────
# Application state
# ─────────────────────────────────────────────────────────────────────────────
class AfterLifeState:
    # ── Core ──────────────────────────────────────────────────────────────────
    owner                = GlobalStateValue(TealType.bytes,  key="owner",                default=Bytes(""))
    fee_sink             = GlobalStateValue(TealType.bytes,  key="fee_sink",             default=Bytes(""))
    state                = GlobalStateValue(TealType.uint64, key="state",                default=Int(STATE_ACTIVE))
    last_heartbeat       = GlobalStateValue(TealType.uint64, key="last_heartbeat",       default=Int(0))
    inactivity_threshold = GlobalStateValue(TealType.uint64, key="inactivity_threshold", default=Int(0))
    is_dead              = GlobalStateValue(TealType.uint64, key="is_dead",              default=Int(0))
    death_time           = GlobalStateValue(TealType.uint64, key="death_time",           default=Int(0))
    vesting_start        = GlobalStateValue(TealType.uint64, key="vesting_start",        default=Int(0))

    # ── Vault ─────────────────────────────────────────────────────────────────
    vault_snapshot       = GlobalStateValue(TealType.uint64, key="vault_snapshot",       default=Int(0))
    vault_balance        = GlobalStateValue(TealType.uint64, key="vault_balance",        default=Int(0))
    fees_collected       = GlobalStateValue(TealType.uint64, key="fees_collected",       default=Int(0))

    # ── Registries ────────────────────────────────────────────────────────────
    total_allocation     = GlobalStateValue(TealType.uint64, key="total_allocation",     default=Int(0))
    guardian_count       = GlobalStateValue(TealType.uint64, key="guardian_count",       default=Int(0))
    beneficiary_count    = GlobalStateValue(TealType.uint64, key="beneficiary_count",    default=Int(0))
    funded_count         = GlobalStateValue(TealType.uint64, key="funded_count",         default=Int(0))
    unpaid_count         = GlobalStateValue(TealType.uint64, key="unpaid_count",         default=Int(0))

    guardians     = BoxMapping(abi.Address, GuardianRecord, prefix=Bytes("g"))
    beneficiaries = BoxMapping(abi.Address, BeneficiaryRecord, prefix=Bytes("b"))


app = Application("AfterLife", state=AfterLifeState())


def _only_owner() -> Expr:
    return Assert(Txn.sender() == app.state.owner.get(), comment=ERR_NOT_OWNER)


def _only_alive() -> Expr:
    return Assert(app.state.is_dead.get() == Int(0), comment=ERR_PROTOCOL_DEAD)


def _pay(receiver: Expr, amount: Expr) -> Expr:
    return InnerTxnBuilder.Execute({
        TxnField.type_enum: TxnType.Payment,
        TxnField.receiver:  receiver,
        TxnField.amount:    amount,
        TxnField.fee:       Int(0),
    })


def _vested(snapshot: Expr, bps: Expr, vesting_type: Expr, duration: Expr, elapsed: Expr) -> Expr:
    """snapshot * bps / 10000 scaled by the vested fraction, floored once."""
    return If(
        elapsed >= duration,
        WideRatio([snapshot, bps], [Int(BPS_DENOMINATOR)]),
        If(
            vesting_type == Int(VESTING_CLIFF),
            Int(0),
            WideRatio([snapshot, bps, elapsed], [Int(BPS_DENOMINATOR), duration]),
        ),
    )


def _elapsed_since_vesting() -> Expr:
    now = Global.latest_timestamp()
    start = app.state.vesting_start.get()
    return If(now > start, now - start, Int(0))


# ─────────────────────────────────────────────────────────────────────────────
# 1. REGISTER (create)
# ─────────────────────────────────────────────────────────────────────────────
@app.create
def register(threshold: abi.Uint64, fee_sink: abi.Address, *, output: abi.Uint64) -> Expr:
    """Create the protocol instance. Caller becomes the owner."""
    return Seq(
        Assert(threshold.get() >= Int(MIN_INACTIVITY_SECONDS), comment="Threshold Too Short"),
        app.initialize_global_state(),
        app.state.owner.set(Txn.sender()),
        app.state.fee_sink.set(fee_sink.get()),
        app.state.inactivity_threshold.set(threshold.get()),
        app.state.last_heartbeat.set(Global.latest_timestamp()),
        output.set(Global.latest_timestamp()),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 2. HEARTBEAT
# ─────────────────────────────────────────────────────────────────────────────
@app.external
def prove_life(*, output: abi.Uint64) -> Expr:
    """Owner resets the inactivity clock. Blocked after death."""
    return Seq(
        _only_owner(),
        Assert(app.state.is_dead.get() == Int(0), comment="Already Dead"),
        app.state.last_heartbeat.set(Global.latest_timestamp()),
        output.set(Global.latest_timestamp()),
    )


@app.external
def update_inactivity_threshold(seconds: abi.Uint64, *, output: abi.Uint64) -> Expr:
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(seconds.get() >= Int(MIN_INACTIVITY_SECONDS), comment="Threshold Too Short"),
        app.state.inactivity_threshold.set(seconds.get()),
        output.set(seconds.get()),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 3. GUARDIANS
# ─────────────────────────────────────────────────────────────────────────────
@app.external
def add_guardian(name: abi.String, guardian: abi.Address, is_fixed: abi.Bool) -> Expr:
    record = GuardianRecord()
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(Not(app.state.guardians[guardian].exists()), comment="Exists"),
        record.set(name, is_fixed),
        app.state.guardians[guardian].set(record),
        app.state.guardian_count.increment(),
    )


@app.external
def remove_guardian(guardian: abi.Address) -> Expr:
    record = GuardianRecord()
    fixed = abi.Bool()
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(app.state.guardians[guardian].exists(), comment="Not Found"),
        app.state.guardians[guardian].store_into(record),
        record.is_fixed.store_into(fixed),
        Assert(Not(fixed.get()), comment="Guardian Fixed"),
        Pop(app.state.guardians[guardian].delete()),
        app.state.guardian_count.decrement(),
    )


@app.external
def confirm_inactivity(*, output: abi.Uint64) -> Expr:
    """Any registered guardian declares death once the threshold has elapsed."""
    deadline = app.state.last_heartbeat.get() + app.state.inactivity_threshold.get()
    return Seq(
        Assert(app.state.guardians[Txn.sender()].exists(), comment="Not Guardian"),
        Assert(app.state.is_dead.get() == Int(0),          comment="Already Dead"),
        Assert(Global.latest_timestamp() > deadline,       comment="Owner Active"),
        app.state.is_dead.set(Int(1)),
        app.state.death_time.set(Global.latest_timestamp()),
        app.state.vesting_start.set(Global.latest_timestamp()),
        app.state.vault_snapshot.set(app.state.vault_balance.get()),
        app.state.unpaid_count.set(app.state.funded_count.get()),
        If(
            app.state.vault_snapshot.get() == Int(0),
            app.state.unpaid_count.set(Int(0)),
        ),
        app.state.state.set(
            If(app.state.unpaid_count.get() == Int(0), Int(STATE_COMPLETED), Int(STATE_EXECUTING))
        ),
        output.set(app.state.state.get()),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 4. BENEFICIARIES
# ─────────────────────────────────────────────────────────────────────────────
@app.external
def add_beneficiary(
    name:           abi.String,
    beneficiary:    abi.Address,
    allocation_bps: abi.Uint64,
    vesting_type:   abi.Uint8,
    duration:       abi.Uint64,
) -> Expr:
    record = BeneficiaryRecord()
    claimed = abi.Uint64()
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(Not(app.state.beneficiaries[beneficiary].exists()), comment="Exists"),
        Assert(vesting_type.get() <= Int(VESTING_CLIFF),          comment="Invalid Vesting Type"),
        Assert(
            app.state.total_allocation.get() + allocation_bps.get() <= Int(BPS_DENOMINATOR),
            comment="Allocation Exceeded",
        ),
        claimed.set(Int(0)),
        record.set(name, allocation_bps, vesting_type, duration, claimed),
        app.state.beneficiaries[beneficiary].set(record),
        app.state.total_allocation.set(app.state.total_allocation.get() + allocation_bps.get()),
        app.state.beneficiary_count.increment(),
        If(allocation_bps.get() > Int(0), app.state.funded_count.increment()),
    )


@app.external
def remove_beneficiary(beneficiary: abi.Address) -> Expr:
    record = BeneficiaryRecord()
    bps = abi.Uint64()
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(app.state.beneficiaries[beneficiary].exists(), comment="Not Found"),
        app.state.beneficiaries[beneficiary].store_into(record),
        record.allocation_bps.store_into(bps),
        app.state.total_allocation.set(app.state.total_allocation.get() - bps.get()),
        If(bps.get() > Int(0), app.state.funded_count.decrement()),
        Pop(app.state.beneficiaries[beneficiary].delete()),
        app.state.beneficiary_count.decrement(),
    )


@app.external
def update_allocation(beneficiary: abi.Address, new_bps: abi.Uint64, *, output: abi.Uint64) -> Expr:
    """Re-clamp an allocation to [0, 10000 - others]. Returns the stored value."""
    record = BeneficiaryRecord()
    name = abi.String()
    old_bps = abi.Uint64()
    vesting_type = abi.Uint8()
    duration = abi.Uint64()
    claimed = abi.Uint64()
    clamped = abi.Uint64()
    others = ScratchVar(TealType.uint64)
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(app.state.beneficiaries[beneficiary].exists(), comment="Not Found"),
        app.state.beneficiaries[beneficiary].store_into(record),
        record.name.store_into(name),
        record.allocation_bps.store_into(old_bps),
        record.vesting_type.store_into(vesting_type),
        record.vesting_duration.store_into(duration),
        record.amount_claimed.store_into(claimed),
        others.store(app.state.total_allocation.get() - old_bps.get()),
        clamped.set(
            If(
                new_bps.get() > Int(BPS_DENOMINATOR) - others.load(),
                Int(BPS_DENOMINATOR) - others.load(),
                new_bps.get(),
            )
        ),
        If(old_bps.get() == Int(0), If(clamped.get() > Int(0), app.state.funded_count.increment())),
        If(old_bps.get() > Int(0), If(clamped.get() == Int(0), app.state.funded_count.decrement())),
        record.set(name, clamped, vesting_type, duration, claimed),
        app.state.beneficiaries[beneficiary].set(record),
        app.state.total_allocation.set(others.load() + clamped.get()),
        output.set(clamped.get()),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 5. VAULT
# ─────────────────────────────────────────────────────────────────────────────
@app.external
def deposit(payment: abi.PaymentTransaction, *, output: abi.Uint64) -> Expr:
    """Lock ALGO into the vault. Grouped PaymentTransaction required."""
    return Seq(
        _only_owner(),
        Assert(payment.get().receiver() == Global.current_application_address(),
               comment="Payment must go to contract"),
        Assert(payment.get().amount() > Int(0), comment="Invalid Amount"),
        app.state.vault_balance.set(app.state.vault_balance.get() + payment.get().amount()),
        output.set(app.state.vault_balance.get()),
    )


@app.external
def withdraw(amount: abi.Uint64, *, output: abi.Uint64) -> Expr:
    """Owner takes funds back out while alive."""
    return Seq(
        _only_owner(),
        _only_alive(),
        Assert(amount.get() > Int(0),                              comment="Invalid Amount"),
        Assert(amount.get() <= app.state.vault_balance.get(),      comment="Insufficient Vault Balance"),
        _pay(app.state.owner.get(), amount.get()),
        app.state.vault_balance.set(app.state.vault_balance.get() - amount.get()),
        output.set(app.state.vault_balance.get()),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 6. CLAIM
# ─────────────────────────────────────────────────────────────────────────────
@app.external
def claim(fee_sink: abi.Account, *, output: abi.Uint64) -> Expr:
    """Beneficiary pulls everything vested so far. Returns the net payout."""
    record = BeneficiaryRecord()
    name = abi.String()
    bps = abi.Uint64()
    vesting_type = abi.Uint8()
    duration = abi.Uint64()
    claimed = abi.Uint64()
    entitlement = ScratchVar(TealType.uint64)
    vested = ScratchVar(TealType.uint64)
    claimable = ScratchVar(TealType.uint64)
    fee = ScratchVar(TealType.uint64)
    return Seq(
        Assert(app.state.is_dead.get() == Int(1), comment="Protocol Active"),
        Assert(app.state.beneficiaries[Txn.sender()].exists(), comment="Not Beneficiary"),
        Assert(fee_sink.address() == app.state.fee_sink.get(), comment="Wrong Fee Sink"),
        app.state.beneficiaries[Txn.sender()].store_into(record),
        record.name.store_into(name),
        record.allocation_bps.store_into(bps),
        record.vesting_type.store_into(vesting_type),
        record.vesting_duration.store_into(duration),
        record.amount_claimed.store_into(claimed),
        entitlement.store(WideRatio([app.state.vault_snapshot.get(), bps.get()], [Int(BPS_DENOMINATOR)])),
        vested.store(_vested(
            app.state.vault_snapshot.get(), bps.get(), vesting_type.get(), duration.get(),
            _elapsed_since_vesting(),
        )),
        claimable.store(If(vested.load() > claimed.get(), vested.load() - claimed.get(), Int(0))),
        Assert(claimable.load() > Int(0),                           comment="Nothing Claimable"),
        Assert(claimable.load() <= app.state.vault_balance.get(),   comment="Insufficient Vault Balance"),
        fee.store(WideRatio([claimable.load(), Int(PLATFORM_FEE_BPS)], [Int(BPS_DENOMINATOR)])),
        _pay(Txn.sender(), claimable.load() - fee.load()),
        If(fee.load() > Int(0), _pay(fee_sink.address(), fee.load())),
        claimed.set(claimed.get() + claimable.load()),
        record.set(name, bps, vesting_type, duration, claimed),
        app.state.beneficiaries[Txn.sender()].set(record),
        app.state.vault_balance.set(app.state.vault_balance.get() - claimable.load()),
        app.state.fees_collected.set(app.state.fees_collected.get() + fee.load()),
        If(claimed.get() >= entitlement.load(), app.state.unpaid_count.decrement()),
        If(app.state.unpaid_count.get() == Int(0), app.state.state.set(Int(STATE_COMPLETED))),
        output.set(claimable.load() - fee.load()),
    )


@app.external
def release_share(beneficiary: abi.Address, *, output: abi.Uint64) -> Expr:
    """
    Retire a funded beneficiary whose entitlement floors to 0 microALGO.
    Such a share can never be claimed, so it would otherwise hold the app
    in EXECUTING forever. Callable by anyone after death.
    """
    record = BeneficiaryRecord()
    bps = abi.Uint64()
    return Seq(
        Assert(app.state.is_dead.get() == Int(1), comment="Protocol Active"),
        Assert(app.state.beneficiaries[beneficiary].exists(), comment="Not Beneficiary"),
        Assert(app.state.unpaid_count.get() > Int(0), comment="Nothing To Release"),
        app.state.beneficiaries[beneficiary].store_into(record),
        record.allocation_bps.store_into(bps),
        Assert(bps.get() > Int(0), comment="Nothing To Release"),
        Assert(
            WideRatio([app.state.vault_snapshot.get(), bps.get()], [Int(BPS_DENOMINATOR)]) == Int(0),
            comment="Share Not Empty",
        ),
        Pop(app.state.beneficiaries[beneficiary].delete()),
        app.state.beneficiary_count.decrement(),
        app.state.unpaid_count.decrement(),
        If(app.state.unpaid_count.get() == Int(0), app.state.state.set(Int(STATE_COMPLETED))),
        output.set(app.state.state.get()),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 7. READ-ONLY HELPERS
# ─────────────────────────────────────────────────────────────────────────────
@app.external(read_only=True)
def get_status(*, output: abi.String) -> Expr:
    """Returns: ACTIVE | WARNING | PENDING | EXECUTING | COMPLETED"""
    elapsed = Global.latest_timestamp() - app.state.last_heartbeat.get()
    threshold = app.state.inactivity_threshold.get()
    return output.set(
        Cond(
            [app.state.state.get() == Int(STATE_COMPLETED), Bytes("COMPLETED")],
            [app.state.is_dead.get() == Int(1),             Bytes("EXECUTING")],
            [elapsed > threshold,                           Bytes("PENDING")],
            [elapsed * Int(10) > threshold * Int(7),        Bytes("WARNING")],
            [Int(1),                                        Bytes("ACTIVE")],
        )
    )


@app.external(read_only=True)
def get_time_remaining(*, output: abi.Uint64) -> Expr:
    """Seconds until the inactivity deadline. Returns 0 if past deadline."""
    deadline = app.state.last_heartbeat.get() + app.state.inactivity_threshold.get()
    now      = Global.latest_timestamp()
    return If(
        now >= deadline,
        output.set(Int(0)),
        output.set(deadline - now),
    )


@app.external(read_only=True)
def get_owner_balance(*, output: abi.Uint64) -> Expr:
    """Live vault balance in microALGO."""
    return output.set(app.state.vault_balance.get())


@app.external(read_only=True)
def get_claimable_amount(beneficiary: abi.Address, *, output: ClaimableAmount) -> Expr:
    record = BeneficiaryRecord()
    bps = abi.Uint64()
    vesting_type = abi.Uint8()
    duration = abi.Uint64()
    claimed = abi.Uint64()
    claimable = abi.Uint64()
    entitlement = abi.Uint64()
    vested = ScratchVar(TealType.uint64)
    return Seq(
        Assert(app.state.beneficiaries[beneficiary].exists(), comment="Not Beneficiary"),
        app.state.beneficiaries[beneficiary].store_into(record),
        record.allocation_bps.store_into(bps),
        record.vesting_type.store_into(vesting_type),
        record.vesting_duration.store_into(duration),
        record.amount_claimed.store_into(claimed),
        entitlement.set(WideRatio([app.state.vault_snapshot.get(), bps.get()], [Int(BPS_DENOMINATOR)])),
        vested.store(
            If(
                app.state.is_dead.get() == Int(1),
                _vested(
                    app.state.vault_snapshot.get(), bps.get(), vesting_type.get(), duration.get(),
                    _elapsed_since_vesting(),
                ),
                Int(0),
            )
        ),
        claimable.set(If(vested.load() > claimed.get(), vested.load() - claimed.get(), Int(0))),
        output.set(claimable, entitlement, claimed),
    )


if __name__ == "__main__":
    from afterlife.scripts.compile import main

    main()
