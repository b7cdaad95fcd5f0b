"""
deploy.py — AfterLife contract deployment script
=================================================
Usage:
    python -m afterlife.scripts.deploy [threshold_seconds]

Requirements:
    pip install -e .
    ALGO_MNEMONIC env var must be set (or use .env file)
    AFTERLIFE_FEE_SINK env var: address receiving the platform fee
                                (defaults to the deployer)

Run ``python -m afterlife.scripts.compile`` first.
"""

import base64
import json
import math
import os
import sys

from algosdk import account, mnemonic
from algosdk.logic import get_application_address
from algosdk.abi import Contract
from algosdk.atomic_transaction_composer import AccountTransactionSigner, AtomicTransactionComposer
from algosdk.transaction import OnComplete, StateSchema

from afterlife.chain import make_algod_client, retry_on_429
from afterlife.config import NETWORK
from afterlife.scripts.compile import ARTIFACTS

DEFAULT_THRESHOLD = 30 * 24 * 60 * 60   # 30 days

# Global schema (exact count from contracts/afterlife.py):
#   Uint64 (14): state, last_heartbeat, inactivity_threshold, is_dead, death_time,
#                vesting_start, vault_snapshot, vault_balance, fees_collected,
#                total_allocation, guardian_count, beneficiary_count,
#                funded_count, unpaid_count
#   Bytes  (2) : owner, fee_sink
GLOBAL_SCHEMA = StateSchema(num_uints=14, num_byte_slices=2)
LOCAL_SCHEMA = StateSchema(num_uints=0, num_byte_slices=0)


def compile_program(algod, source: str) -> bytes:
    """Compile TEAL source and return raw bytes (rate-limit safe)."""
    response = retry_on_429(algod.compile, source)
    return base64.b64decode(response["result"])


def main(threshold: int = DEFAULT_THRESHOLD):
    raw_mnemonic = os.getenv("ALGO_MNEMONIC")
    if not raw_mnemonic:
        sys.exit(
            "❌  ALGO_MNEMONIC environment variable not set.\n"
            "    Export your 25-word mnemonic:\n"
            "    export ALGO_MNEMONIC='word1 word2 ... word25'"
        )
    private_key = mnemonic.to_private_key(raw_mnemonic)
    address     = account.address_from_private_key(private_key)
    fee_sink    = os.getenv("AFTERLIFE_FEE_SINK", address)

    approval_teal = (ARTIFACTS / "AfterLife.approval.teal").read_text()
    clear_teal    = (ARTIFACTS / "AfterLife.clear.teal").read_text()
    contract      = Contract.from_json((ARTIFACTS / "AfterLife.abi.json").read_text())

    algod = make_algod_client(NETWORK)
    print(f"\n🚀 Deploying AfterLife to {NETWORK.upper()}...")
    print(f"   Owner     : {address}")
    print(f"   Fee sink  : {fee_sink}")
    print(f"   Threshold : {threshold}s")

    print("   Compiling approval program...")
    approval_bytes = compile_program(algod, approval_teal)
    print("   Compiling clear program...")
    clear_bytes    = compile_program(algod, clear_teal)

    # Extra program pages: each page = 2048 bytes (max 3 extra pages)
    extra_pages = max(0, math.ceil(len(approval_bytes) / 2048) - 1)
    if extra_pages > 0:
        print(f"   Program size : {len(approval_bytes)} bytes — using {extra_pages} extra page(s)")

    atc = AtomicTransactionComposer()
    atc.add_method_call(
        app_id=0,
        method=contract.get_method_by_name("register"),
        sender=address,
        sp=retry_on_429(algod.suggested_params),
        signer=AccountTransactionSigner(private_key),
        method_args=[threshold, fee_sink],
        on_complete=OnComplete.NoOpOC,
        approval_program=approval_bytes,
        clear_program=clear_bytes,
        global_schema=GLOBAL_SCHEMA,
        local_schema=LOCAL_SCHEMA,
        extra_pages=extra_pages,
    )
    result = atc.execute(algod, wait_rounds=8)
    txid = result.tx_ids[0]
    info = retry_on_429(algod.pending_transaction_info, txid)
    app_id = info["application-index"]
    app_addr = get_application_address(app_id)

    print(f"\n✅ AfterLife registered for {address}")
    print(f"   App ID      : {app_id}")
    print(f"   App address : {app_addr}")
    print(f"   Create txn  : {txid}")
    print("\n   Before adding guardians, fund the app address so it can hold boxes")
    print("   and pay inner transaction fees. Then add beneficiaries and deposit.\n")

    (ARTIFACTS / "deployed.json").write_text(json.dumps({
        "network": NETWORK,
        "app_id": app_id,
        "app_address": app_addr,
        "deploy_txid": txid,
        "owner": address,
        "fee_sink": fee_sink,
        "threshold": threshold,
    }, indent=2))
    print(f"  Saved to {ARTIFACTS / 'deployed.json'}")

    return app_id, app_addr


if __name__ == "__main__":
    main(int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_THRESHOLD)
