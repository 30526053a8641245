"""Solvency proof model and the capability state shared by the crypto components."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional


class CapabilityMode(str, enum.Enum):
    """Whether a component is backed by its real external service."""
    LIVE = "live"
    SIMULATED = "simulated"


@dataclass(frozen=True)
class CapabilityStatus:
    component: str
    initialized: bool
    mode: Optional[CapabilityMode]
    backend_id: Optional[str] = None

    @property
    def live(self) -> bool:
        return self.mode == CapabilityMode.LIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "initialized": self.initialized,
            "mode": self.mode.value if self.mode else None,
            "backend_id": self.backend_id,
        }


@dataclass(frozen=True)
class PublicInputs:
    """The only part of a solvency proof the verifier learns."""
    threshold: int
    is_solvent: bool

    def as_backend_inputs(self) -> Dict[str, str]:
        return {
            "threshold": str(self.threshold),
            "is_solvent": "1" if self.is_solvent else "0",
        }


@dataclass(frozen=True)
class SolvencyProof:
    """Proof that a hidden value meets a public threshold."""
    proof: bytes
    public_inputs: PublicInputs
    timestamp_utc: datetime
    mode: CapabilityMode
    context_address: Optional[str] = None

    @property
    def threshold(self) -> int:
        return self.public_inputs.threshold

    @property
    def is_solvent(self) -> bool:
        return self.public_inputs.is_solvent

    def bound_to(self, context_address: str) -> SolvencyProof:
        """Return a copy tagged with the context it was produced for."""
        return replace(self, context_address=context_address)

    def with_public_inputs(self, public_inputs: PublicInputs) -> SolvencyProof:
        return replace(self, public_inputs=public_inputs)
