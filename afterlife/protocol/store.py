"""
JSON persistence for a ProtocolHost: one record per owner, each carrying its
guardian and beneficiary sub-collections.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

from ..config import ProtocolConfig, state_file_path
from .clock import system_clock
from .machine import ProtocolHost, ProtocolInstance

logger = logging.getLogger("afterlife.store")

STATE_VERSION = 1


def dump_host(host: ProtocolHost) -> dict:
    return {
        "version": STATE_VERSION,
        "saved_at": int(time.time()),
        "protocols": {i.owner: i.to_dict() for i in host.instances()},
    }


def save_host(host: ProtocolHost, path: Optional[str] = None):
    """Write the host state atomically: temp file in the same dir, then rename."""
    p = Path(path or state_file_path())
    p.parent.mkdir(parents=True, exist_ok=True)
    state = dump_host(host)

    tmp_fd, tmp_path = tempfile.mkstemp(dir=str(p.parent), suffix=".tmp", prefix="afterlife_")
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_path, str(p))
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.info("saved %d protocol(s) to %s", len(state["protocols"]), p)


def load_host(
    path: Optional[str] = None,
    config: Optional[ProtocolConfig] = None,
    clock: Callable[[], int] = system_clock,
) -> ProtocolHost:
    """
    Rebuild a host from ``path`` (default ``AFTERLIFE_STATE_FILE``). A missing
    file yields an empty host; without ``config`` the policy comes from the
    environment.
    """
    host = ProtocolHost(config=config, clock=clock)
    p = Path(path or state_file_path())
    if not p.exists():
        logger.info("no state file at %s, starting fresh", p)
        return host

    with open(p, "r", encoding="utf-8") as f:
        state = json.load(f)
    if state.get("version") != STATE_VERSION:
        raise ValueError(f"unsupported state version {state.get('version')!r} in {p}")

    for record in state.get("protocols", {}).values():
        host.adopt(ProtocolInstance.from_dict(record))
    logger.info("restored %d protocol(s) from %s", len(host.instances()), p)
    return host
