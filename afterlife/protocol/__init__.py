from .beneficiaries import Beneficiary, BeneficiaryRegistry, VestingType
from .clock import HeartbeatTracker, ProtocolState, StateMonitor, derive_state
from .errors import *  # noqa: F401,F403
from .guardians import ConfirmationPolicy, Guardian, GuardianRegistry
from .machine import ProtocolHost, ProtocolInstance
from .store import load_host, save_host
from .vesting import ClaimableAmount, ClaimReceipt, Vault, VestingEngine
