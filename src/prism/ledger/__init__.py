"""Ledger layer — the contract every identity registry satisfies, plus two registries."""

from prism.ledger.base import LedgerService
from prism.ledger.memory import InMemoryLedger

__all__ = ["LedgerService", "InMemoryLedger"]
