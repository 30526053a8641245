"""Ledger service contract.

All durable identity state lives in the ledger. The identity manager never
talks to a concrete ledger; it talks to this Protocol. Implementations must
translate their own failures into the error taxonomy:

    RejectedError       — the ledger confirmed the operation did not apply
                          (duplicate account, already revoked, no funds ...).
    IndeterminateError  — the request may or may not have applied.

A second creation at an index that is already taken must be rejected with
RejectionReason.ALREADY_EXISTS; that rejection is what makes index
assignment safe without locks in the core.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from prism.models.identity import ContextIdentity, ContextType, PrivacyLevel, RootIdentity


@runtime_checkable
class LedgerService(Protocol):
    """Create/revoke/fetch operations over identity records."""

    async def create_root(self, owner: str, privacy_level: PrivacyLevel) -> RootIdentity:
        ...

    async def create_context(
        self,
        root_address: str,
        index: int,
        context_type: ContextType,
        max_per_transaction: int,
    ) -> ContextIdentity:
        ...

    async def revoke_context(self, root_address: str, index: int) -> ContextIdentity:
        ...

    async def fetch_root(self, owner: str) -> Optional[RootIdentity]:
        ...

    async def fetch_context(self, address: str) -> Optional[ContextIdentity]:
        ...

    async def update_privacy_level(self, owner: str, privacy_level: PrivacyLevel) -> RootIdentity:
        ...
