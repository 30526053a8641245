"""Encrypted access flow."""

from prism.access.orchestrator import (
    EncryptedAccess,
    EncryptedContextResult,
    EncryptedSolvencyResult,
    QuickAccessResult,
)

__all__ = [
    "EncryptedAccess",
    "EncryptedContextResult",
    "EncryptedSolvencyResult",
    "QuickAccessResult",
]
