"""Commitment model — ciphertext plus a publicly checkable binding hash.

commitment = SHA-256(secret_bytes || binding_key || nonce)

The nonce is the producer's opening. It never appears in the public
record, so full verification requires the original inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


SIMULATION_BACKEND_ID = "SIMULATION"


@dataclass(frozen=True)
class Commitment:
    """An immutable encryption result bound to a key (usually a context)."""
    ciphertext: bytes
    commitment: str
    binding_key: str
    timestamp_utc: datetime
    backend_id: Optional[str] = None
    payload_hashed: bool = False

    @property
    def simulated(self) -> bool:
        return self.backend_id == SIMULATION_BACKEND_ID

    def short(self) -> str:
        """Truncated commitment for log lines."""
        return self.commitment[:16] + "..."
