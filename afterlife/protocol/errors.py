"""
Protocol errors.

Three families: authorization (wrong caller), precondition (wrong state for
the operation) and resource (the operation would break an accounting
invariant). Every operation raises before mutating anything.
"""


class ProtocolError(Exception):
    message = "Protocol error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)


class AuthorizationError(ProtocolError):
    message = "Not authorized"


class PreconditionError(ProtocolError):
    message = "Precondition failed"


class ResourceError(ProtocolError):
    message = "Resource limit"


# ── Authorization ─────────────────────────────────────────────────────────────
class NotOwner(AuthorizationError):
    message = "Not Owner"


class NotGuardian(AuthorizationError):
    message = "Not Guardian"


class NotBeneficiary(AuthorizationError):
    message = "Not Beneficiary"


# ── Precondition ──────────────────────────────────────────────────────────────
class ProtocolDead(PreconditionError):
    message = "Protocol Dead"


class ProtocolActive(PreconditionError):
    message = "Protocol Active"


class OwnerActive(PreconditionError):
    message = "Owner Active"


class AlreadyDead(PreconditionError):
    message = "Already Dead"


class AlreadyExists(PreconditionError):
    message = "Exists"


class NotFound(PreconditionError):
    message = "Not Found"


class NotRegistered(PreconditionError):
    message = "Not Registered"


class AlreadyRegistered(PreconditionError):
    message = "Already Registered"


class InvalidAddress(PreconditionError):
    message = "Invalid Address"


class ThresholdTooShort(PreconditionError):
    message = "Threshold Too Short"


class GuardianFixed(PreconditionError):
    message = "Guardian Fixed"


class ConfirmationInProgress(PreconditionError):
    message = "Confirmation In Progress"


class AlreadyConfirmed(PreconditionError):
    message = "Already Confirmed"


class ReviveUnavailable(PreconditionError):
    message = "Revive Unavailable"


# ── Resource ──────────────────────────────────────────────────────────────────
class AllocationExceeded(ResourceError):
    message = "Allocation Exceeded"


class InsufficientVaultBalance(ResourceError):
    message = "Insufficient Vault Balance"


class NothingClaimable(ResourceError):
    message = "Nothing Claimable"


class InvalidAmount(ResourceError):
    message = "Invalid Amount"
