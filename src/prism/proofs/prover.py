"""Solvency prover — zero-knowledge proof that a hidden value meets a threshold.

State machine:
    UNINITIALIZED → INITIALIZING → READY

READY carries a mode: LIVE when the proving backend loaded its circuit,
SIMULATED otherwise. Simulated proofs are plain tagged bytes; their
verification only reads the public inputs and detects no tampering.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from prism.config import PrismConfig
from prism.errors import CapabilityUnavailableError, PrismError, ProofInfeasibleError
from prism.logging_config import short
from prism.models.commitment import SIMULATION_BACKEND_ID
from prism.models.proof import CapabilityMode, CapabilityStatus, PublicInputs, SolvencyProof
from prism.proofs.backend import CIRCUIT_NAME, NargoBackend, ProvingBackend
from prism.validation import validate_amount

logger = logging.getLogger(__name__)


class ProverState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SolvencyProver:
    """Generates and verifies solvency proofs.

    Usage:
        prover = SolvencyProver(config=PrismConfig.from_env())
        proof = await prover.generate_proof(500_000, 10_000)
        assert await prover.verify_proof(proof)

    Args:
        backend: Proving backend; built from config.circuit_dir when omitted.
        config: Used only to locate the circuit.
        clock: Timestamp source.
    """

    component = "solvency_prover"

    def __init__(
        self,
        backend: Optional[ProvingBackend] = None,
        config: Optional[PrismConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        config = config or PrismConfig()
        if backend is None and config.circuit_dir is not None:
            backend = NargoBackend(config.circuit_dir)
        self._backend = backend
        self._clock = clock or _utc_now
        self._state = ProverState.UNINITIALIZED
        self._mode: Optional[CapabilityMode] = None
        self._init_lock = asyncio.Lock()

    @property
    def state(self) -> ProverState:
        return self._state

    @property
    def mode(self) -> Optional[CapabilityMode]:
        return self._mode

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    async def initialize(self) -> CapabilityStatus:
        """Load the circuit, or settle on simulation. Never raises."""
        if self._state == ProverState.READY:
            return self.status()
        async with self._init_lock:
            if self._state == ProverState.READY:
                return self.status()
            self._state = ProverState.INITIALIZING
            self._mode = CapabilityMode.SIMULATED
            if self._backend is None:
                logger.info("Solvency prover in simulation mode (no proving backend configured)")
            else:
                try:
                    await self._backend.load_circuit()
                except Exception as exc:
                    logger.warning("Proving backend unavailable, using simulation mode: %s", exc)
                else:
                    self._mode = CapabilityMode.LIVE
                    logger.info("Solvency prover live (%s)", self._backend.backend_id)
            self._state = ProverState.READY
        return self.status()

    def is_live(self) -> bool:
        return self._mode == CapabilityMode.LIVE

    def status(self) -> CapabilityStatus:
        backend_id = None
        if self._mode == CapabilityMode.LIVE:
            backend_id = self._backend.backend_id
        elif self._mode == CapabilityMode.SIMULATED:
            backend_id = SIMULATION_BACKEND_ID
        return CapabilityStatus(
            component=self.component,
            initialized=self._state == ProverState.READY,
            mode=self._mode,
            backend_id=backend_id,
        )

    async def require_live(self) -> None:
        await self.initialize()
        if not self.is_live():
            raise CapabilityUnavailableError(
                "Solvency prover is running in simulation mode; proofs are not tamper resistant",
                details={"component": self.component},
            )

    @staticmethod
    def circuit_info() -> Dict[str, Any]:
        return {
            "name": CIRCUIT_NAME,
            "inputs": ["actual_balance (private)", "threshold (public)"],
            "outputs": ["is_solvent (public)"],
        }

    # ------------------------------------------------------------------
    # Proofs
    # ------------------------------------------------------------------

    async def generate_proof(
        self,
        actual_value: int,
        threshold: int,
        context_address: Optional[str] = None,
    ) -> SolvencyProof:
        """Prove actual_value >= threshold without revealing actual_value.

        All input checks run before the backend is touched.

        Raises:
            InvalidInputError: an input is negative or not an integer.
            ValueTooLargeError: an input does not fit in a u64.
            ProofInfeasibleError: actual_value < threshold.
            PrismError: the live backend failed to produce a proof.
        """
        # the circuit takes both inputs as u64
        validate_amount(actual_value, "actual_value")
        validate_amount(threshold, "threshold")
        if actual_value < threshold:
            raise ProofInfeasibleError(
                "value does not meet the threshold; no proof exists",
                details={"threshold": threshold},
            )

        await self.initialize()
        public_inputs = PublicInputs(threshold=threshold, is_solvent=True)
        timestamp = self._clock()
        logger.info("Generating solvency proof (threshold=%d, %s)", threshold, self._mode.value)

        if self._mode == CapabilityMode.LIVE:
            try:
                proof_bytes = await self._backend.prove(
                    {"actual_balance": str(actual_value)},
                    public_inputs.as_backend_inputs(),
                )
            except PrismError:
                raise
            except Exception as exc:
                raise PrismError(f"Proof generation failed: {exc}", code="PROOF_GENERATION_FAILED") from exc
        else:
            ts_ms = int(timestamp.timestamp() * 1000)
            proof_bytes = f"SIMULATED_PROOF_{threshold}_{ts_ms}".encode("utf-8")

        proof = SolvencyProof(
            proof=proof_bytes,
            public_inputs=public_inputs,
            timestamp_utc=timestamp,
            mode=self._mode,
        )
        if context_address is not None:
            proof = proof.bound_to(context_address)
            logger.debug("Proof tagged with context %s", short(context_address))
        return proof

    async def verify_proof(self, proof: SolvencyProof) -> bool:
        """True iff the proof claims solvency and, in live mode, the backend accepts it."""
        if not isinstance(proof, SolvencyProof):
            return False
        await self.initialize()
        if not proof.public_inputs.is_solvent:
            return False
        if self._mode != CapabilityMode.LIVE:
            return True
        try:
            valid = await self._backend.verify(proof.proof, proof.public_inputs.as_backend_inputs())
        except Exception as exc:
            logger.warning("Proof verification errored: %s", exc)
            return False
        logger.info("Proof verification: %s", "VALID" if valid else "INVALID")
        return bool(valid)
