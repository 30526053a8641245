"""Identity models — root identities, disposable contexts, lifecycle outcomes.

A root identity exists once per owner and is never deleted. Contexts are
derived from a root at a fixed index; the only mutation this core performs
on a context is the one-way revoke. Spend totals are written by the ledger.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


# Ledger stores amounts as u64 and the context index as u16.
MAX_U64 = 2**64 - 1
MAX_CONTEXT_INDEX = 2**16 - 1

DEFAULT_MAX_PER_TRANSACTION = 1_000_000_000


class PrivacyLevel(enum.IntEnum):
    """Disclosure level of a root identity (ledger value 0..4)."""
    MAXIMUM = 0  # Full anonymity
    HIGH = 1  # Minimal disclosure
    MEDIUM = 2
    LOW = 3
    PUBLIC = 4


class ContextType(enum.IntEnum):
    """Purpose of a context identity (ledger value 0..5)."""
    DEFI = 0
    SOCIAL = 1
    GAMING = 2
    PROFESSIONAL = 3
    TEMPORARY = 4  # Burn after use
    PUBLIC = 5


class Outcome(str, enum.Enum):
    """What a lifecycle call actually did.

    Distinguishes "just happened" from "was already done" so retries
    after an indeterminate failure are observable without ambiguity.
    """
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"
    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"


@dataclass
class RootIdentity:
    """The single top-level identity of an owner.

    context_count is the next index to assign and only ever grows.
    """
    owner: str
    address: str
    privacy_level: PrivacyLevel
    created_utc: datetime
    context_count: int = 0


@dataclass
class ContextIdentity:
    """A disposable, spending-limited identity derived from a root."""
    address: str
    root_address: str
    context_type: ContextType
    context_index: int
    max_per_transaction: int
    created_utc: datetime
    total_spent: int = 0
    revoked: bool = False

    def allows(self, amount: int) -> bool:
        """True if a single transaction of `amount` fits under the ceiling."""
        return not self.revoked and amount <= self.max_per_transaction


@dataclass(frozen=True)
class CreateRootResult:
    root: RootIdentity
    outcome: Outcome

    @property
    def created(self) -> bool:
        return self.outcome == Outcome.CREATED


@dataclass(frozen=True)
class CreateContextResult:
    context: ContextIdentity
    outcome: Outcome = Outcome.CREATED

    @property
    def context_address(self) -> str:
        return self.context.address

    @property
    def context_index(self) -> int:
        return self.context.context_index


@dataclass(frozen=True)
class RevocationResult:
    """Terminal state of a revoke call."""
    context_address: str
    context_index: int
    total_spent: int
    outcome: Outcome
    context: Optional[ContextIdentity] = None

    @property
    def already_revoked(self) -> bool:
        return self.outcome == Outcome.ALREADY_REVOKED
