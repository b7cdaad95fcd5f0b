"""
chain.py — Read an AfterLife application's state from algod
============================================================
Decodes the contract's global state into the same snapshot shape that
``ProtocolHost.get_protocol_state`` returns, so a ``StateMonitor`` can poll
either source.
"""

import base64
import time

from algosdk import encoding
from algosdk.error import AlgodHTTPError
from algosdk.v2client import algod as algod_client_module

from .config import ALGOD_SERVERS, NETWORK

# ── Rate-limit helpers ────────────────────────────────────────────────────────
# AlgoNode free tier: ~1 req/s on algod; add backoff on HTTP 429.
_MAX_RETRIES = 5
_BACKOFF_BASE = 2          # exponential base (2 ** attempt seconds)

# on-chain canonical state codes
STATE_CODES = {0: "ACTIVE", 1: "EXECUTING", 2: "COMPLETED"}


def retry_on_429(fn, *args, sleep=time.sleep, **kwargs):
    """Call fn(*args, **kwargs) retrying up to _MAX_RETRIES times on HTTP 429."""
    for attempt in range(_MAX_RETRIES):
        try:
            return fn(*args, **kwargs)
        except AlgodHTTPError as exc:
            if "429" in str(exc) or getattr(exc, "code", None) == 429:
                sleep(_BACKOFF_BASE ** attempt)
            else:
                raise
    raise RuntimeError("AlgoNode rate limit: max retries exceeded")


def make_algod_client(network: str = NETWORK) -> algod_client_module.AlgodClient:
    if network not in ALGOD_SERVERS:
        raise ValueError(f"Unsupported network: {network}")
    server, port, token = ALGOD_SERVERS[network]
    url = server if not port else f"{server}:{port}"
    headers = {"User-Agent": "algosdk", "x-api-key": token} if token else {"User-Agent": "algosdk"}
    return algod_client_module.AlgodClient(token, url, headers=headers)


def decode_global_state(raw_state: list) -> dict:
    """Turn algod's ``global-state`` list into ``{key: int | bytes}``."""
    decoded = {}
    for entry in raw_state:
        key = base64.b64decode(entry["key"]).decode("utf-8")
        value = entry["value"]
        if value["type"] == 1:
            decoded[key] = base64.b64decode(value.get("bytes", ""))
        else:
            decoded[key] = value.get("uint", 0)
    return decoded


def _address(raw: bytes) -> str:
    return encoding.encode_address(raw) if raw else ""


def snapshot_from_global_state(state: dict, now: int) -> dict:
    """
    The contract is single-authority (first guardian confirmation declares
    death) and keeps no tally, so the snapshot carries no ``confirmations``.
    """
    last_heartbeat = state.get("last_heartbeat", 0)
    threshold = state.get("inactivity_threshold", 0)
    is_dead = bool(state.get("is_dead", 0))
    return {
        "owner": _address(state.get("owner", b"")),
        "is_registered": bool(state.get("owner")),
        "state": STATE_CODES.get(state.get("state", 0), "ACTIVE"),
        "last_heartbeat": last_heartbeat,
        "inactivity_threshold": threshold,
        "is_dead": is_dead,
        "death_declaration_time": state.get("death_time", 0),
        "vesting_start_time": state.get("vesting_start", 0),
        "vault_balance": state.get("vault_snapshot", 0),
        "current_vault_balance": state.get("vault_balance", 0),
        "fees_collected": state.get("fees_collected", 0),
        "total_allocation": state.get("total_allocation", 0),
        "guardian_count": state.get("guardian_count", 0),
        "beneficiary_count": state.get("beneficiary_count", 0),
        "time_remaining": 0 if is_dead else max(0, last_heartbeat + threshold - now),
    }


def read_protocol_state(algod, app_id: int, now: int = None) -> dict:
    """Fetch and decode the protocol snapshot of one deployed application."""
    info = retry_on_429(algod.application_info, app_id)
    raw = info.get("params", {}).get("global-state", [])
    return snapshot_from_global_state(decode_global_state(raw), int(time.time()) if now is None else now)
