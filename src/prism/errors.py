"""Error taxonomy — every failure the core can surface to a caller.

Local failures (fail fast, no network round-trip):
    InvalidInputError, InvalidKeyError, IndexOutOfRangeError,
    ProofInfeasibleError, ValueTooLargeError

Remote failures:
    RejectedError       — the ledger or service explicitly refused.
    IndeterminateError  — outcome unknown (timeout, transport failure).
                          Re-query persisted state before resubmitting.

Capability:
    CapabilityUnavailableError — raised only when a caller demands live
    mode; the silent downgrade to simulation never raises it.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, Optional


class PrismError(Exception):
    """Base class for all Prism errors."""

    code = "PRISM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Render the error for logs and CLI output."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(PrismError):
    code = "INVALID_INPUT"


class InvalidKeyError(InvalidInputError):
    code = "INVALID_KEY"


class IndexOutOfRangeError(PrismError):
    code = "INDEX_OUT_OF_RANGE"


class ProofInfeasibleError(PrismError):
    code = "PROOF_INFEASIBLE"


class ValueTooLargeError(PrismError):
    code = "VALUE_TOO_LARGE"


class RejectionReason(str, enum.Enum):
    """Why a remote service refused an operation."""
    ALREADY_EXISTS = "already_exists"
    ALREADY_REVOKED = "already_revoked"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CONTEXT_REVOKED = "context_revoked"
    EXCEEDS_TRANSACTION_LIMIT = "exceeds_transaction_limit"
    SPENDING_OVERFLOW = "spending_overflow"
    INVALID_PRIVACY_LEVEL = "invalid_privacy_level"
    INVALID_CONTEXT_TYPE = "invalid_context_type"
    INDEX_MISMATCH = "index_mismatch"
    INVALID_AMOUNT = "invalid_amount"
    OTHER = "other"


class RejectedError(PrismError):
    """A remote service confirmed the operation did not happen."""

    code = "REJECTED"

    def __init__(
        self,
        message: str,
        reason: RejectionReason = RejectionReason.OTHER,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.reason = reason
        self.details.setdefault("reason", reason.value)


class IndeterminateError(PrismError):
    """The outcome of a remote call is unknown."""

    code = "INDETERMINATE"


class CapabilityUnavailableError(PrismError):
    code = "CAPABILITY_UNAVAILABLE"
