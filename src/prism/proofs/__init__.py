"""Proof layer — solvency proofs over a Noir circuit or its simulation."""

from prism.proofs.backend import NargoBackend, ProvingBackend
from prism.proofs.prover import ProverState, SolvencyProver

__all__ = [
    "NargoBackend",
    "ProverState",
    "ProvingBackend",
    "SolvencyProver",
]
