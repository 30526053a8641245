"""Input validation shared by the identity, encryption and proof layers.

Every check here runs before any network call.
"""

from __future__ import annotations

from typing import Any

from prism.errors import IndexOutOfRangeError, InvalidInputError, ValueTooLargeError
from prism.models.identity import MAX_CONTEXT_INDEX, MAX_U64, ContextType, PrivacyLevel


def require_non_negative_int(value: Any, field: str) -> int:
    """Reject bools, floats, strings and negatives."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(
            f"{field} must be an integer, got {type(value).__name__}",
            details={"field": field},
        )
    if value < 0:
        raise InvalidInputError(f"{field} cannot be negative", details={"field": field})
    return value


def validate_amount(value: Any, field: str = "amount", maximum: int = MAX_U64) -> int:
    """A ledger amount: non-negative integer no larger than `maximum`."""
    require_non_negative_int(value, field)
    if value > maximum:
        raise ValueTooLargeError(
            f"{field} exceeds maximum value {maximum}",
            details={"field": field, "maximum": maximum},
        )
    return value


def validate_context_index(index: Any) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidInputError(
            f"context index must be an integer, got {type(index).__name__}",
            details={"field": "index"},
        )
    if index < 0 or index > MAX_CONTEXT_INDEX:
        raise IndexOutOfRangeError(
            f"context index {index} outside 0..{MAX_CONTEXT_INDEX}",
            details={"index": index, "maximum": MAX_CONTEXT_INDEX},
        )
    return index


def validate_privacy_level(level: Any) -> PrivacyLevel:
    if isinstance(level, bool):
        raise InvalidInputError("privacy level must be a PrivacyLevel", details={"field": "privacy_level"})
    try:
        return PrivacyLevel(level)
    except ValueError:
        raise InvalidInputError(
            f"Invalid privacy level: {level!r}. Valid levels: "
            f"{', '.join(str(int(p)) for p in PrivacyLevel)}",
            details={"field": "privacy_level"},
        ) from None


def validate_context_type(context_type: Any) -> ContextType:
    if isinstance(context_type, bool):
        raise InvalidInputError("context type must be a ContextType", details={"field": "context_type"})
    try:
        return ContextType(context_type)
    except ValueError:
        raise InvalidInputError(
            f"Invalid context type: {context_type!r}. Valid types: "
            f"{', '.join(str(int(c)) for c in ContextType)}",
            details={"field": "context_type"},
        ) from None
