"""Identity manager — root/context lifecycle on top of a LedgerService.

Lifecycle:
    root     created once per owner (get-or-create), read many times, never deleted
    context  created at index = root.context_count, revoked one-way

Idempotency contract: a caller retrying after IndeterminateError observes
either the original effect (ALREADY_EXISTED / ALREADY_REVOKED) or a clean
RejectedError, never a duplicate record.

The manager holds no locks. Callers acting on the same root serialize
themselves; the ledger rejects a second creation at a used index.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Optional, TypeVar

from prism.config import DEFAULT_PROGRAM_SEED
from prism.errors import IndeterminateError, RejectedError, RejectionReason
from prism.identity.derivation import derive_context_address, derive_root_address, normalize_address
from prism.ledger.base import LedgerService
from prism.logging_config import short
from prism.models.identity import (
    DEFAULT_MAX_PER_TRANSACTION,
    ContextIdentity,
    ContextType,
    CreateContextResult,
    CreateRootResult,
    Outcome,
    PrivacyLevel,
    RevocationResult,
    RootIdentity,
)
from prism.validation import (
    validate_amount,
    validate_context_index,
    validate_context_type,
    validate_privacy_level,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IdentityManager:
    """Creates, revokes and reads identity records.

    Usage:
        manager = IdentityManager(InMemoryLedger())
        root = (await manager.create_root_identity(owner, PrivacyLevel.HIGH)).root
        ctx = (await manager.create_context(root, ContextType.DEFI, 50 * 10**9)).context
        await manager.revoke_context(root, ctx.context_index)

    Args:
        ledger: Where identity records live.
        program_seed: Seed mixed into root address derivation; must match the ledger's.
        default_timeout: Seconds applied to ledger calls when a call passes none.
    """

    def __init__(
        self,
        ledger: LedgerService,
        program_seed: str = DEFAULT_PROGRAM_SEED,
        default_timeout: Optional[float] = None,
    ) -> None:
        self._ledger = ledger
        self._program_seed = program_seed
        self._default_timeout = default_timeout

    @property
    def ledger(self) -> LedgerService:
        return self._ledger

    # ------------------------------------------------------------------
    # Pure derivation
    # ------------------------------------------------------------------

    def root_address_of(self, owner: str) -> str:
        return derive_root_address(owner, self._program_seed)

    def context_address_of(self, root: RootIdentity, index: int) -> str:
        return derive_context_address(root.address, index)

    # ------------------------------------------------------------------
    # Root identity
    # ------------------------------------------------------------------

    async def create_root_identity(
        self,
        owner: str,
        privacy_level: PrivacyLevel = PrivacyLevel.HIGH,
        *,
        timeout: Optional[float] = None,
    ) -> CreateRootResult:
        """Get-or-create the root identity of `owner`.

        Returns the existing root with outcome ALREADY_EXISTED instead of
        failing, because the ledger rejects duplicate creation and
        duplicate submissions are common over unreliable networks.

        Raises:
            InvalidKeyError: owner is malformed.
            InvalidInputError: privacy_level is not a PrivacyLevel value.
            RejectedError: the ledger refused for any other reason.
            IndeterminateError: outcome unknown; call again to re-query.
        """
        owner = normalize_address(owner, field="owner")
        level = validate_privacy_level(privacy_level)

        existing = await self._await("fetch_root", self._ledger.fetch_root(owner), timeout)
        if existing is not None:
            logger.info("Root identity %s already exists", short(existing.address))
            return CreateRootResult(root=existing, outcome=Outcome.ALREADY_EXISTED)

        logger.info("Creating root identity %s (privacy=%s)", short(self.root_address_of(owner)), level.name)
        try:
            root = await self._await("create_root", self._ledger.create_root(owner, level), timeout)
        except RejectedError as exc:
            if exc.reason != RejectionReason.ALREADY_EXISTS:
                raise
            root = await self._await("fetch_root", self._ledger.fetch_root(owner), timeout)
            if root is None:
                raise
            logger.info("Root identity %s already exists (caught during creation)", short(root.address))
            return CreateRootResult(root=root, outcome=Outcome.ALREADY_EXISTED)
        return CreateRootResult(root=root, outcome=Outcome.CREATED)

    async def get_root_identity(self, owner: str, *, timeout: Optional[float] = None) -> Optional[RootIdentity]:
        owner = normalize_address(owner, field="owner")
        return await self._await("fetch_root", self._ledger.fetch_root(owner), timeout)

    async def has_root_identity(self, owner: str, *, timeout: Optional[float] = None) -> bool:
        return await self.get_root_identity(owner, timeout=timeout) is not None

    async def update_privacy_level(
        self,
        root: RootIdentity,
        privacy_level: PrivacyLevel,
        *,
        timeout: Optional[float] = None,
    ) -> RootIdentity:
        """Change the privacy level of a root; `root` is updated in place."""
        level = validate_privacy_level(privacy_level)
        updated = await self._await(
            "update_privacy_level", self._ledger.update_privacy_level(root.owner, level), timeout,
        )
        root.privacy_level = updated.privacy_level
        return root

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    async def create_context(
        self,
        root: RootIdentity,
        context_type: ContextType,
        max_per_transaction: int = DEFAULT_MAX_PER_TRANSACTION,
        privacy_level: Optional[PrivacyLevel] = None,
        *,
        timeout: Optional[float] = None,
    ) -> CreateContextResult:
        """Create the next context of `root`.

        The context takes index root.context_count. On success the
        caller's `root.context_count` is advanced by exactly one. If the
        ledger does not know the root yet, it is registered first with
        `privacy_level` (when given).

        On a stale index (another writer got there first) the root snapshot
        is refreshed from the ledger before the rejection propagates, so
        the caller can simply call again.

        Raises:
            InvalidInputError: bad type or amount.
            ValueTooLargeError: ceiling exceeds u64.
            IndexOutOfRangeError: the root has used every index.
            RejectedError / IndeterminateError: from the ledger.
        """
        ctype = validate_context_type(context_type)
        validate_amount(max_per_transaction, "max_per_transaction")
        level = validate_privacy_level(privacy_level) if privacy_level is not None else None

        index = root.context_count
        address = derive_context_address(root.address, index)
        logger.info(
            "Creating context %d of %s (type=%s, ceiling=%d)",
            index, short(root.address), ctype.name, max_per_transaction,
        )

        try:
            context = await self._await(
                "create_context",
                self._ledger.create_context(root.address, index, ctype, max_per_transaction),
                timeout,
            )
        except RejectedError as exc:
            if exc.reason == RejectionReason.NOT_FOUND and level is not None:
                registered = await self.create_root_identity(root.owner, level, timeout=timeout)
                root.context_count = registered.root.context_count
                return await self.create_context(root, ctype, max_per_transaction, timeout=timeout)
            if exc.reason in (RejectionReason.ALREADY_EXISTS, RejectionReason.INDEX_MISMATCH):
                await self._refresh(root, timeout)
                logger.warning(
                    "Context index %d of %s was stale; ledger count is now %d",
                    index, short(root.address), root.context_count,
                )
            raise

        if context.address != address:
            raise IndeterminateError(
                f"Ledger returned context {short(context.address)}, expected {short(address)}",
                details={"index": index},
            )
        root.context_count = index + 1
        return CreateContextResult(context=context, outcome=Outcome.CREATED)

    async def revoke_context(
        self,
        root: RootIdentity,
        index: int,
        *,
        timeout: Optional[float] = None,
    ) -> RevocationResult:
        """Revoke context `index` of `root`; idempotent.

        An already revoked context returns outcome ALREADY_REVOKED with its
        terminal state rather than an error.

        Raises:
            IndexOutOfRangeError: index outside the u16 range.
            RejectedError: context does not exist (NOT_FOUND) or other refusal.
            IndeterminateError: outcome unknown; call again to re-query.
        """
        validate_context_index(index)
        address = derive_context_address(root.address, index)

        existing = await self._await("fetch_context", self._ledger.fetch_context(address), timeout)
        if existing is None:
            raise RejectedError(
                f"Context {index} of {short(root.address)} not found",
                RejectionReason.NOT_FOUND,
                details={"index": index},
            )
        if existing.revoked:
            logger.info("Context %d of %s is already revoked", index, short(root.address))
            return self._revocation(existing, Outcome.ALREADY_REVOKED)

        logger.info("Revoking context %d of %s", index, short(root.address))
        try:
            revoked = await self._await(
                "revoke_context", self._ledger.revoke_context(root.address, index), timeout,
            )
        except RejectedError as exc:
            if exc.reason != RejectionReason.ALREADY_REVOKED:
                raise
            current = await self._await("fetch_context", self._ledger.fetch_context(address), timeout)
            return self._revocation(current or existing, Outcome.ALREADY_REVOKED)
        return self._revocation(revoked, Outcome.REVOKED)

    async def revoke_context_at(
        self,
        root: RootIdentity,
        context_address: str,
        *,
        timeout: Optional[float] = None,
    ) -> RevocationResult:
        """Revoke a context of `root` by its address; see revoke_context.

        Raises:
            InvalidKeyError: malformed address.
            RejectedError: no such context (NOT_FOUND), or it belongs to
                another root (UNAUTHORIZED).
        """
        address = normalize_address(context_address, field="context_address")
        context = await self._await("fetch_context", self._ledger.fetch_context(address), timeout)
        if context is None:
            raise RejectedError(f"Context {short(address)} not found", RejectionReason.NOT_FOUND)
        if context.root_address != root.address:
            raise RejectedError(
                f"Context {short(address)} does not belong to root {short(root.address)}",
                RejectionReason.UNAUTHORIZED,
            )
        return await self.revoke_context(root, context.context_index, timeout=timeout)

    async def get_context(
        self,
        root: RootIdentity,
        index: int,
        *,
        timeout: Optional[float] = None,
    ) -> Optional[ContextIdentity]:
        address = derive_context_address(root.address, index)
        return await self._await("fetch_context", self._ledger.fetch_context(address), timeout)

    async def get_contexts(self, root: RootIdentity, *, timeout: Optional[float] = None) -> List[ContextIdentity]:
        """All contexts of `root` in index order, active and revoked."""
        contexts: List[ContextIdentity] = []
        for index in range(root.context_count):
            context = await self.get_context(root, index, timeout=timeout)
            if context is not None:
                contexts.append(context)
        return contexts

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _await(self, operation: str, call: Awaitable[T], timeout: Optional[float]) -> T:
        """Await a ledger call under the caller's timeout.

        Expiry means the request may still land, so it surfaces as
        IndeterminateError rather than a rejection.
        """
        timeout = self._default_timeout if timeout is None else timeout
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise IndeterminateError(
                f"{operation} timed out after {timeout}s; re-query before retrying",
                details={"operation": operation, "timeout": timeout},
            ) from exc

    async def _refresh(self, root: RootIdentity, timeout: Optional[float]) -> None:
        current = await self._await("fetch_root", self._ledger.fetch_root(root.owner), timeout)
        if current is not None:
            root.context_count = current.context_count

    @staticmethod
    def _revocation(context: ContextIdentity, outcome: Outcome) -> RevocationResult:
        return RevocationResult(
            context_address=context.address,
            context_index=context.context_index,
            total_spent=context.total_spent,
            outcome=outcome,
            context=context,
        )
