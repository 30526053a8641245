"""Encrypted access — identity, commitment and proof composed into one flow.

For a claim "value >= threshold" made through a context:

    1. the value is encrypted and committed, bound to the context address,
    2. the value is proven against the threshold (zero-knowledge),
    3. the proof is tagged with the same context address.

Commitment and proof are produced over the same plaintext but are not
cryptographically linked; the context address is the only shared tag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from prism.config import PrismConfig
from prism.encryption.binder import CommitmentBinder
from prism.errors import ProofInfeasibleError
from prism.identity.derivation import hash_root_identity, normalize_address
from prism.identity.manager import IdentityManager
from prism.ledger.base import LedgerService
from prism.ledger.memory import InMemoryLedger
from prism.ledger.web3_ledger import Web3Ledger
from prism.logging_config import short
from prism.models.commitment import Commitment
from prism.models.identity import ContextType, CreateContextResult, PrivacyLevel
from prism.models.proof import SolvencyProof
from prism.proofs.prover import SolvencyProver
from prism.validation import validate_amount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptedSolvencyResult:
    commitment: Commitment
    proof: SolvencyProof
    context_address: str


@dataclass(frozen=True)
class EncryptedContextResult:
    """A context whose root is referenced only through a hash and a commitment."""
    context: CreateContextResult
    root_identity_hash: str
    encryption_commitment: Commitment

    @property
    def context_address(self) -> str:
        return self.context.context_address


@dataclass(frozen=True)
class QuickAccessResult:
    context: CreateContextResult
    commitment: Commitment
    proof: SolvencyProof
    access_granted: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context_address": self.context.context_address,
            "context_index": self.context.context_index,
            "commitment": self.commitment.commitment,
            "commitment_backend": self.commitment.backend_id,
            "threshold": self.proof.threshold,
            "is_solvent": self.proof.is_solvent,
            "proof_mode": self.proof.mode.value,
            "access_granted": self.access_granted,
        }


class EncryptedAccess:
    """Runs the encrypted solvency flow for an owner.

    Usage:
        access = EncryptedAccess.from_config(PrismConfig.from_env())
        result = await access.quick_access(owner, 500_000_000_000, 10_000_000_000)
        assert result.access_granted

    Args:
        identity: Identity manager over the ledger.
        binder: Commitment binder.
        prover: Solvency prover.
        allow_simulation: When False, every flow first asserts that both
            binder and prover are live.
    """

    def __init__(
        self,
        identity: IdentityManager,
        binder: CommitmentBinder,
        prover: SolvencyProver,
        allow_simulation: bool = True,
    ) -> None:
        self._identity = identity
        self._binder = binder
        self._prover = prover
        self._allow_simulation = allow_simulation

    @classmethod
    def from_config(cls, config: PrismConfig, ledger: Optional[LedgerService] = None) -> EncryptedAccess:
        """Wire the components from configuration.

        Without an explicit ledger, a configured registry contract is used
        and an in-memory ledger otherwise.
        """
        if ledger is None:
            if config.ledger_configured:
                ledger = Web3Ledger.from_config(config)
            else:
                ledger = InMemoryLedger(program_seed=config.program_seed)
        return cls(
            IdentityManager(ledger, program_seed=config.program_seed),
            CommitmentBinder(config),
            SolvencyProver(config=config),
            allow_simulation=config.allow_simulation,
        )

    @property
    def identity(self) -> IdentityManager:
        return self._identity

    @property
    def binder(self) -> CommitmentBinder:
        return self._binder

    @property
    def prover(self) -> SolvencyProver:
        return self._prover

    async def status(self) -> Dict[str, Any]:
        self._binder.initialize()
        await self._prover.initialize()
        binder, prover = self._binder.status(), self._prover.status()
        return {
            "binder": binder.to_dict(),
            "prover": prover.to_dict(),
            "live": binder.live and prover.live,
            "allow_simulation": self._allow_simulation,
        }

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def generate_encrypted_solvency_proof(
        self,
        actual_value: int,
        threshold: int,
        context_address: str,
    ) -> EncryptedSolvencyResult:
        """Commit to `actual_value` and prove it meets `threshold`, both bound to one context.

        Raises:
            InvalidInputError / ValueTooLargeError: bad amounts.
            InvalidKeyError: malformed context address.
            ProofInfeasibleError: actual_value < threshold.
            CapabilityUnavailableError: simulation is disallowed and a
                component is not live.
        """
        self._check_claim(actual_value, threshold)
        context_address = normalize_address(context_address, field="context_address")
        await self._ensure_capabilities()

        logger.info("Encrypted solvency proof for %s (threshold=%d)", short(context_address), threshold)
        commitment = await self._binder.encrypt(actual_value, context_address)
        logger.debug("Commitment %s bound to %s", commitment.commitment[:16], short(context_address))
        proof = await self._prover.generate_proof(actual_value, threshold, context_address=context_address)
        return EncryptedSolvencyResult(commitment=commitment, proof=proof, context_address=context_address)

    async def create_encrypted_context(
        self,
        owner: str,
        context_type: ContextType = ContextType.DEFI,
        max_per_transaction: Optional[int] = None,
        privacy_level: PrivacyLevel = PrivacyLevel.HIGH,
    ) -> EncryptedContextResult:
        """Create a context and commit to its root, bound to the new context address.

        A relying party sees the root only as a SHA-256 hash plus a
        commitment it cannot open.
        """
        await self._ensure_capabilities()
        root = (await self._identity.create_root_identity(owner, privacy_level)).root
        if max_per_transaction is None:
            created = await self._identity.create_context(root, context_type)
        else:
            created = await self._identity.create_context(root, context_type, max_per_transaction)
        commitment = await self._binder.encrypt_data(
            bytes.fromhex(root.address[2:]), created.context_address,
        )
        return EncryptedContextResult(
            context=created,
            root_identity_hash=hash_root_identity(root.address),
            encryption_commitment=commitment,
        )

    async def quick_access(
        self,
        owner: str,
        value: int,
        threshold: int,
        privacy_level: PrivacyLevel = PrivacyLevel.HIGH,
    ) -> QuickAccessResult:
        """Get-or-create the root, open a fresh DEFI context and prove against it.

        The context's per-transaction ceiling is `value`. The claim is
        checked before anything is written to the ledger.
        """
        self._check_claim(value, threshold)
        await self._ensure_capabilities()
        root = (await self._identity.create_root_identity(owner, privacy_level)).root
        created = await self._identity.create_context(root, ContextType.DEFI, value)
        logger.info("Quick access through context %d (%s)", created.context_index, short(created.context_address))
        return await self._finish(created, value, threshold)

    async def quick_access_encrypted(
        self,
        owner: str,
        value: int,
        threshold: int,
        privacy_level: PrivacyLevel = PrivacyLevel.HIGH,
    ) -> QuickAccessResult:
        """quick_access through a context created by create_encrypted_context."""
        self._check_claim(value, threshold)
        encrypted = await self.create_encrypted_context(owner, ContextType.DEFI, value, privacy_level)
        return await self._finish(encrypted.context, value, threshold)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _finish(self, created: CreateContextResult, value: int, threshold: int) -> QuickAccessResult:
        result = await self.generate_encrypted_solvency_proof(value, threshold, created.context_address)
        granted = await self._prover.verify_proof(result.proof)
        logger.info("Access %s for %s", "GRANTED" if granted else "DENIED", short(created.context_address))
        return QuickAccessResult(
            context=created,
            commitment=result.commitment,
            proof=result.proof,
            access_granted=granted,
        )

    @staticmethod
    def _check_claim(value: int, threshold: int) -> None:
        validate_amount(value, "actual_value")
        validate_amount(threshold, "threshold")
        if value < threshold:
            raise ProofInfeasibleError(
                "value does not meet the threshold; no proof exists",
                details={"threshold": threshold},
            )

    async def _ensure_capabilities(self) -> None:
        self._binder.initialize()
        await self._prover.initialize()
        if not self._allow_simulation:
            self._binder.require_live()
            await self._prover.require_live()
