"""
compile.py — Compile the AfterLife contract to TEAL artifacts
==============================================================
Usage:
    python -m afterlife.scripts.compile

Outputs to afterlife/contracts/artifacts/:
    AfterLife.approval.teal
    AfterLife.clear.teal
    AfterLife.abi.json
"""

import json
import pathlib

ARTIFACTS = pathlib.Path(__file__).parent.parent / "contracts" / "artifacts"


def write_artifacts(out: pathlib.Path = ARTIFACTS):
    from afterlife.contracts.afterlife import app

    out.mkdir(parents=True, exist_ok=True)
    spec = app.build()

    (out / "AfterLife.approval.teal").write_text(spec.approval_program)
    (out / "AfterLife.clear.teal").write_text(spec.clear_program)
    (out / "AfterLife.abi.json").write_text(json.dumps(spec.contract.dictify(), indent=2))
    return spec


def main():
    spec = write_artifacts()
    print(f"✅ Artifacts written to {ARTIFACTS}")
    print(f"   Approval TEAL : {len(spec.approval_program.splitlines())} lines")
    print(f"   Methods       : {[m.name for m in spec.contract.methods]}")


if __name__ == "__main__":
    main()
