"""In-memory ledger — reference implementation of the identity registry rules.

Used by tests, the CLI demo and offline development. It enforces the same
rules as the on-chain registry:

- one root per owner (duplicate creation is rejected)
- contexts are created only at index == root.context_count
- revocation is one-way (a second revoke is rejected)
- spend amounts are u64; they are checked against the per-transaction
  ceiling and recorded

Records handed out are copies; mutating them does not change ledger state.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from prism.config import DEFAULT_PROGRAM_SEED
from prism.errors import InvalidInputError, RejectedError, RejectionReason, ValueTooLargeError
from prism.identity.derivation import derive_context_address, derive_root_address, normalize_address
from prism.logging_config import short
from prism.models.identity import MAX_U64, ContextIdentity, ContextType, PrivacyLevel, RootIdentity
from prism.validation import validate_amount, validate_context_type, validate_privacy_level

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryLedger:
    """Dict-backed identity registry.

    Usage:
        ledger = InMemoryLedger()
        root = await ledger.create_root(owner, PrivacyLevel.HIGH)
        ctx = await ledger.create_context(root.address, 0, ContextType.DEFI, 10**9)
        await ledger.record_spending(ctx.address, 5 * 10**8)
        await ledger.revoke_context(root.address, 0)
    """

    def __init__(
        self,
        program_seed: str = DEFAULT_PROGRAM_SEED,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._program_seed = program_seed
        self._clock = clock or _utc_now
        self._roots: Dict[str, RootIdentity] = {}  # keyed by owner
        self._roots_by_address: Dict[str, str] = {}  # root address -> owner
        self._contexts: Dict[str, ContextIdentity] = {}  # keyed by address

    # ------------------------------------------------------------------
    # LedgerService
    # ------------------------------------------------------------------

    async def create_root(self, owner: str, privacy_level: PrivacyLevel) -> RootIdentity:
        owner = normalize_address(owner, field="owner")
        if owner in self._roots:
            raise RejectedError(
                f"Root identity for {short(owner)} already in use",
                RejectionReason.ALREADY_EXISTS,
            )
        try:
            level = validate_privacy_level(privacy_level)
        except InvalidInputError as exc:
            raise RejectedError(str(exc), RejectionReason.INVALID_PRIVACY_LEVEL) from exc

        root = RootIdentity(
            owner=owner,
            address=derive_root_address(owner, self._program_seed),
            privacy_level=level,
            created_utc=self._clock(),
            context_count=0,
        )
        self._roots[owner] = root
        self._roots_by_address[root.address] = owner
        logger.debug("ledger: root %s created", short(root.address))
        return replace(root)

    async def create_context(
        self,
        root_address: str,
        index: int,
        context_type: ContextType,
        max_per_transaction: int,
    ) -> ContextIdentity:
        root = self._root_by_address(root_address)
        try:
            ctype = validate_context_type(context_type)
        except InvalidInputError as exc:
            raise RejectedError(str(exc), RejectionReason.INVALID_CONTEXT_TYPE) from exc

        address = derive_context_address(root.address, index)
        if address in self._contexts:
            raise RejectedError(
                f"Context {index} of {short(root.address)} already in use",
                RejectionReason.ALREADY_EXISTS,
            )
        if index != root.context_count:
            raise RejectedError(
                f"Context index {index} does not match next index {root.context_count}",
                RejectionReason.INDEX_MISMATCH,
            )

        context = ContextIdentity(
            address=address,
            root_address=root.address,
            context_type=ctype,
            context_index=index,
            max_per_transaction=max_per_transaction,
            created_utc=self._clock(),
        )
        self._contexts[address] = context
        root.context_count += 1
        logger.debug("ledger: context %d of %s created", index, short(root.address))
        return replace(context)

    async def revoke_context(self, root_address: str, index: int) -> ContextIdentity:
        root = self._root_by_address(root_address)
        address = derive_context_address(root.address, index)
        context = self._contexts.get(address)
        if context is None:
            raise RejectedError(
                f"Context {index} of {short(root.address)} not found",
                RejectionReason.NOT_FOUND,
            )
        if context.revoked:
            raise RejectedError("Context already revoked", RejectionReason.ALREADY_REVOKED)
        context.revoked = True
        logger.debug("ledger: context %d of %s revoked", index, short(root.address))
        return replace(context)

    async def fetch_root(self, owner: str) -> Optional[RootIdentity]:
        root = self._roots.get(normalize_address(owner, field="owner"))
        return replace(root) if root is not None else None

    async def fetch_context(self, address: str) -> Optional[ContextIdentity]:
        context = self._contexts.get(normalize_address(address))
        return replace(context) if context is not None else None

    async def update_privacy_level(self, owner: str, privacy_level: PrivacyLevel) -> RootIdentity:
        owner = normalize_address(owner, field="owner")
        root = self._roots.get(owner)
        if root is None:
            raise RejectedError(f"Root identity for {short(owner)} not found", RejectionReason.NOT_FOUND)
        try:
            root.privacy_level = validate_privacy_level(privacy_level)
        except InvalidInputError as exc:
            raise RejectedError(str(exc), RejectionReason.INVALID_PRIVACY_LEVEL) from exc
        return replace(root)

    # ------------------------------------------------------------------
    # Spending rules (enforced by the ledger, surfaced by the core)
    # ------------------------------------------------------------------

    async def check_spending_limit(self, context_address: str, amount: int) -> None:
        """Raise RejectedError unless `amount` is allowed for one transaction."""
        self._check_spend(self._context(context_address), amount)

    async def record_spending(self, context_address: str, amount: int) -> ContextIdentity:
        """Record a transaction against a context's running total."""
        context = self._context(context_address)
        self._check_spend(context, amount)
        new_total = context.total_spent + amount
        if new_total > MAX_U64:
            raise RejectedError(
                "Spending overflow: total spent would exceed u64 max",
                RejectionReason.SPENDING_OVERFLOW,
            )
        context.total_spent = new_total
        return replace(context)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _root_by_address(self, root_address: str) -> RootIdentity:
        owner = self._roots_by_address.get(normalize_address(root_address, field="root_address"))
        if owner is None:
            raise RejectedError(f"Root identity {short(root_address)} not found", RejectionReason.NOT_FOUND)
        return self._roots[owner]

    def _context(self, address: str) -> ContextIdentity:
        context = self._contexts.get(normalize_address(address))
        if context is None:
            raise RejectedError(f"Context {short(address)} not found", RejectionReason.NOT_FOUND)
        return context

    @staticmethod
    def _check_spend(context: ContextIdentity, amount: int) -> None:
        try:
            validate_amount(amount)
        except (InvalidInputError, ValueTooLargeError) as exc:
            raise RejectedError(str(exc), RejectionReason.INVALID_AMOUNT) from exc
        if context.revoked:
            raise RejectedError("Context is revoked and cannot be used", RejectionReason.CONTEXT_REVOKED)
        if not context.allows(amount):
            raise RejectedError(
                "Amount exceeds transaction limit for this context",
                RejectionReason.EXCEEDS_TRANSACTION_LIMIT,
            )
