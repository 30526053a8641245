"""Prism data models — identity records, commitments, proofs."""

from prism.models.commitment import SIMULATION_BACKEND_ID, Commitment
from prism.models.identity import (
    DEFAULT_MAX_PER_TRANSACTION,
    MAX_CONTEXT_INDEX,
    MAX_U64,
    ContextIdentity,
    ContextType,
    CreateContextResult,
    CreateRootResult,
    Outcome,
    PrivacyLevel,
    RevocationResult,
    RootIdentity,
)
from prism.models.proof import (
    CapabilityMode,
    CapabilityStatus,
    PublicInputs,
    SolvencyProof,
)

__all__ = [
    "Commitment",
    "SIMULATION_BACKEND_ID",
    "DEFAULT_MAX_PER_TRANSACTION",
    "MAX_CONTEXT_INDEX",
    "MAX_U64",
    "ContextIdentity",
    "ContextType",
    "CreateContextResult",
    "CreateRootResult",
    "Outcome",
    "PrivacyLevel",
    "RevocationResult",
    "RootIdentity",
    "CapabilityMode",
    "CapabilityStatus",
    "PublicInputs",
    "SolvencyProof",
]
