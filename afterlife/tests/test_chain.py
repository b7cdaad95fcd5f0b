"""
Decoding on-chain global state into protocol snapshots (no network).
"""

import base64

import pytest
from algosdk import encoding
from algosdk.error import AlgodHTTPError

from afterlife.chain import decode_global_state, read_protocol_state, retry_on_429, snapshot_from_global_state
from afterlife.protocol import ProtocolState, StateMonitor

from conftest import T0


def _uint(key, value):
    return {"key": base64.b64encode(key.encode()).decode(), "value": {"type": 2, "uint": value}}


def _bytes(key, value: bytes):
    return {
        "key": base64.b64encode(key.encode()).decode(),
        "value": {"type": 1, "bytes": base64.b64encode(value).decode()},
    }


class FakeAlgod:
    def __init__(self, global_state, failures=0):
        self.global_state = global_state
        self.failures = failures
        self.calls = 0

    def application_info(self, app_id):
        self.calls += 1
        if self.calls <= self.failures:
            raise AlgodHTTPError("Too Many Requests", code=429)
        return {"id": app_id, "params": {"global-state": self.global_state}}


@pytest.fixture
def raw_state(owner):
    return [
        _bytes("owner", encoding.decode_address(owner)),
        _uint("state", 0),
        _uint("last_heartbeat", T0),
        _uint("inactivity_threshold", 100),
        _uint("is_dead", 0),
        _uint("vault_balance", 3_000_000),
        _uint("total_allocation", 7500),
        _uint("guardian_count", 2),
    ]


class TestDecode:
    def test_decode_global_state(self, raw_state, owner):
        decoded = decode_global_state(raw_state)
        assert decoded["last_heartbeat"] == T0
        assert encoding.encode_address(decoded["owner"]) == owner

    def test_snapshot_shape(self, raw_state, owner):
        snapshot = snapshot_from_global_state(decode_global_state(raw_state), T0 + 30)
        assert snapshot["owner"] == owner
        assert snapshot["state"] == "ACTIVE"
        assert snapshot["current_vault_balance"] == 3_000_000
        assert snapshot["total_allocation"] == 7500
        assert snapshot["time_remaining"] == 70
        assert "confirmations" not in snapshot

    def test_executing_code(self):
        snapshot = snapshot_from_global_state({"state": 1, "is_dead": 1}, T0)
        assert snapshot["state"] == "EXECUTING"
        assert snapshot["is_dead"] is True
        assert snapshot["time_remaining"] == 0


class TestReadProtocolState:
    def test_retries_rate_limits(self, raw_state):
        algod = FakeAlgod(raw_state, failures=2)
        waits = []
        result = retry_on_429(algod.application_info, 42, sleep=waits.append)
        assert result["id"] == 42
        assert waits == [1, 2]

    def test_other_errors_propagate(self):
        def boom():
            raise AlgodHTTPError("application does not exist", code=404)

        with pytest.raises(AlgodHTTPError):
            retry_on_429(boom, sleep=lambda s: None)

    def test_monitor_polls_chain(self, raw_state):
        algod = FakeAlgod(raw_state)
        now = T0 + 80
        monitor = StateMonitor(lambda: read_protocol_state(algod, 7, now=now), clock=lambda: now, sync_buffer=0)
        assert monitor.poll() is ProtocolState.WARNING
