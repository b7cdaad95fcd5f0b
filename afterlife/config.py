"""
config.py — Runtime settings for AfterLife
===========================================
Values come from the environment (or a .env file next to the caller).

    NETWORK                            testnet | localnet
    AFTERLIFE_PLATFORM_FEE_BPS         fee withheld from each claim (1000 = 10%)
    AFTERLIFE_SYNC_BUFFER_SECONDS      observer clock-skew allowance
    AFTERLIFE_ENABLE_REVIVE            true | false
    AFTERLIFE_REVIVE_GRACE_SECONDS     revive window after death declaration
    AFTERLIFE_CONFIRMATIONS_REQUIRED   1 = any single guardian, m = m guardians
    AFTERLIFE_STATE_FILE               JSON file used by the host store
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# ── Protocol constants ────────────────────────────────────────────────────────
MIN_INACTIVITY_SECONDS = 60
BPS_DENOMINATOR = 10_000
WARNING_NUMERATOR = 7       # WARNING once elapsed > threshold * 7/10
WARNING_DENOMINATOR = 10

DEFAULT_PLATFORM_FEE_BPS = 1_000
DEFAULT_SYNC_BUFFER_SECONDS = 15
DEFAULT_REVIVE_GRACE_SECONDS = 24 * 60 * 60
DEFAULT_STATE_FILE = "afterlife_state.json"

# ── Network ───────────────────────────────────────────────────────────────────
NETWORK = os.getenv("NETWORK", "testnet")

ALGOD_SERVERS = {
    "testnet":  ("https://testnet-api.algonode.network", "", ""),
    "localnet": ("http://localhost", 4001, "a" * 64),
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class ProtocolConfig:
    """Policy knobs shared by every protocol instance of a host."""

    platform_fee_bps: int = DEFAULT_PLATFORM_FEE_BPS
    sync_buffer_seconds: int = DEFAULT_SYNC_BUFFER_SECONDS
    enable_revive: bool = False
    revive_grace_seconds: int = DEFAULT_REVIVE_GRACE_SECONDS
    confirmations_required: int = 1

    def __post_init__(self):
        if not 0 <= self.platform_fee_bps <= BPS_DENOMINATOR:
            raise ValueError("platform_fee_bps must be within 0..10000")
        if self.sync_buffer_seconds < 0:
            raise ValueError("sync_buffer_seconds must not be negative")
        if self.revive_grace_seconds < 0:
            raise ValueError("revive_grace_seconds must not be negative")
        if self.confirmations_required < 1:
            raise ValueError("confirmations_required must be at least 1")


def load_config() -> ProtocolConfig:
    """Build a ProtocolConfig from the environment."""
    return ProtocolConfig(
        platform_fee_bps=_env_int("AFTERLIFE_PLATFORM_FEE_BPS", DEFAULT_PLATFORM_FEE_BPS),
        sync_buffer_seconds=_env_int("AFTERLIFE_SYNC_BUFFER_SECONDS", DEFAULT_SYNC_BUFFER_SECONDS),
        enable_revive=_env_bool("AFTERLIFE_ENABLE_REVIVE", False),
        revive_grace_seconds=_env_int("AFTERLIFE_REVIVE_GRACE_SECONDS", DEFAULT_REVIVE_GRACE_SECONDS),
        confirmations_required=_env_int("AFTERLIFE_CONFIRMATIONS_REQUIRED", 1),
    )


def state_file_path() -> str:
    return os.getenv("AFTERLIFE_STATE_FILE", DEFAULT_STATE_FILE)
