"""
JSON persistence round-trip of a live host.
"""

import json

import pytest

from afterlife.protocol import ProtocolState, VestingType, load_host, save_host
from afterlife.protocol.errors import NothingClaimable

from conftest import ONE_ALGO, THRESHOLD


@pytest.fixture
def executing(registered, owner, guardian, beneficiary, clock):
    registered.add_guardian(owner, owner, "Guardian1", guardian, is_fixed=True)
    registered.add_beneficiary(owner, owner, "Ben1", beneficiary, 5000, VestingType.CLIFF, 200)
    registered.deposit(owner, owner, 4 * ONE_ALGO)
    clock.advance(THRESHOLD + 1)
    registered.confirm_inactivity(owner, guardian)
    return registered


class TestStore:
    def test_missing_file_gives_empty_host(self, tmp_path, clock):
        host = load_host(str(tmp_path / "absent.json"), clock=clock)
        assert host.instances() == []

    def test_layout_is_one_record_per_owner(self, executing, owner, guardian, beneficiary, tmp_path):
        path = tmp_path / "state" / "afterlife.json"
        save_host(executing, str(path))

        data = json.loads(path.read_text())
        record = data["protocols"][owner]
        assert record["is_dead"] is True
        assert record["guardians"] == [{"name": "Guardian1", "address": guardian, "is_fixed": True}]
        assert record["beneficiaries"][0]["address"] == beneficiary
        assert record["beneficiaries"][0]["vesting_type"] == "CLIFF"
        assert not list(path.parent.glob("*.tmp"))

    def test_restored_host_keeps_claim_accounting(self, executing, owner, beneficiary, clock, tmp_path):
        path = str(tmp_path / "afterlife.json")
        clock.advance(200)
        executing.claim(owner, beneficiary)
        save_host(executing, path)

        restored = load_host(path, config=executing.config, clock=clock)
        assert restored.get_derived_state(owner) is ProtocolState.COMPLETED
        assert restored.get_owner_balance(owner) == 2 * ONE_ALGO
        with pytest.raises(NothingClaimable):
            restored.claim(owner, beneficiary)

    def test_unknown_version_rejected(self, tmp_path):
        path = tmp_path / "afterlife.json"
        path.write_text(json.dumps({"version": 99, "protocols": {}}))
        with pytest.raises(ValueError):
            load_host(str(path))

    def test_state_file_from_environment(self, executing, owner, tmp_path, monkeypatch, clock):
        path = tmp_path / "env" / "afterlife.json"
        monkeypatch.setenv("AFTERLIFE_STATE_FILE", str(path))
        save_host(executing)
        assert path.exists()

        restored = load_host(config=executing.config, clock=clock)
        assert restored.is_owner(owner)

    def test_policy_from_environment_on_load(self, tmp_path, monkeypatch, clock):
        monkeypatch.setenv("AFTERLIFE_PLATFORM_FEE_BPS", "250")
        host = load_host(str(tmp_path / "absent.json"), clock=clock)
        assert host.engine.fee_bps == 250
