"""Commitment binder — encrypt a secret and bind it to a context.

Both modes compute

    commitment = SHA-256(secret_bytes || binding_key_utf8 || nonce)

so a relying party holding the opening can check the binding without
decrypting anything. The nonce is fresh per call and never published.

Modes (resolved once by initialize(), never fails):
    LIVE       fresh X25519 key agreement with the MPC service per call,
               XSalsa20-Poly1305 under the shared secret.
    SIMULATED  secret XOR random nonce stream. Not hiding; development only.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from prism.config import PrismConfig
from prism.encryption.mpc import NONCE_SIZE, MPCEncryptionService, X25519MPCClient, parse_service_key
from prism.errors import (
    CapabilityUnavailableError,
    InvalidInputError,
    InvalidKeyError,
    PrismError,
    ValueTooLargeError,
)
from prism.logging_config import short
from prism.models.commitment import SIMULATION_BACKEND_ID, Commitment
from prism.models.proof import CapabilityMode, CapabilityStatus
from prism.validation import require_non_negative_int

logger = logging.getLogger(__name__)

# Curve25519 base field, the MPC cluster's native field.
FIELD_MODULUS = 2**255 - 19

COMMITMENT_HEX_LENGTH = 64


def encode_secret(secret: int) -> bytes:
    """Unsigned big-endian encoding, at least 8 bytes (a u64 amount)."""
    width = max(8, (secret.bit_length() + 7) // 8)
    return secret.to_bytes(width, "big")


def compute_commitment(secret_bytes: bytes, binding_key: str, nonce: bytes) -> str:
    """The binding hash. Pure: identical inputs give identical output."""
    return hashlib.sha256(secret_bytes + binding_key.encode("utf-8") + nonce).hexdigest()


def _xor_stream(data: bytes, nonce: bytes) -> bytes:
    return bytes(b ^ nonce[i % len(nonce)] for i, b in enumerate(data))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CommitmentBinder:
    """Produces Commitments bound to a context address.

    Usage:
        binder = CommitmentBinder(PrismConfig.from_env())
        binder.initialize()
        commitment = await binder.encrypt(500_000_000_000, context_address)
        assert binder.verify_commitment_format(commitment)

    Args:
        config: Source of the MPC service coordinates.
        service: Override the MPC client (defaults to X25519MPCClient).
        clock: Timestamp source.
    """

    component = "commitment_binder"

    def __init__(
        self,
        config: Optional[PrismConfig] = None,
        service: Optional[MPCEncryptionService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config or PrismConfig()
        self._service_override = service
        self._service: Optional[MPCEncryptionService] = None
        self._clock = clock or _utc_now
        self._mode: Optional[CapabilityMode] = None

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    def initialize(self) -> CapabilityStatus:
        """Select LIVE or SIMULATED from configuration. Idempotent, never raises."""
        if self._mode is not None:
            return self.status()

        self._mode = CapabilityMode.SIMULATED
        if self._config.mpc_configured:
            try:
                parse_service_key(self._config.mxe_address)
            except InvalidKeyError:
                logger.warning("MPC service address is malformed; using simulation mode")
            else:
                self._service = self._service_override or X25519MPCClient(self._config.cluster_id)
                self._mode = CapabilityMode.LIVE
                logger.info(
                    "MPC encryption live (MXE %s, cluster %s)",
                    short(self._config.mxe_address), short(self._config.cluster_id),
                )
        if self._mode == CapabilityMode.SIMULATED:
            logger.info(
                "MPC encryption in simulation mode "
                "(set ARCIUM_MXE_ADDRESS and ARCIUM_CLUSTER_ID for live MPC)"
            )
        return self.status()

    @property
    def mode(self) -> CapabilityMode:
        if self._mode is None:
            self.initialize()
        return self._mode

    def is_live(self) -> bool:
        return self.mode == CapabilityMode.LIVE

    def status(self) -> CapabilityStatus:
        backend_id = None
        if self._mode == CapabilityMode.LIVE:
            backend_id = self._config.mxe_address
        elif self._mode == CapabilityMode.SIMULATED:
            backend_id = SIMULATION_BACKEND_ID
        return CapabilityStatus(
            component=self.component,
            initialized=self._mode is not None,
            mode=self._mode,
            backend_id=backend_id,
        )

    def require_live(self) -> None:
        if self.mode != CapabilityMode.LIVE:
            raise CapabilityUnavailableError(
                "MPC encryption is running in simulation mode; commitments are not hiding",
                details={"component": self.component},
            )

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    async def encrypt(self, secret: int, binding_key: str) -> Commitment:
        """Encrypt a non-negative integer secret bound to `binding_key`.

        Raises:
            InvalidInputError: secret is negative or not an integer, or the
                binding key is empty.
            ValueTooLargeError: secret does not fit the MPC field.
        """
        require_non_negative_int(secret, "secret")
        if secret >= FIELD_MODULUS:
            raise ValueTooLargeError("secret exceeds the MPC field size", details={"field": "secret"})
        self._check_binding_key(binding_key)
        return await self._bind(encode_secret(secret), binding_key, payload_hashed=False)

    async def encrypt_data(self, data: bytes, binding_key: str) -> Commitment:
        """Encrypt an arbitrary payload bound to `binding_key`.

        Payloads whose little-endian value does not fit the MPC field are
        replaced by their SHA-256 digest first. The result then attests to
        the exact byte sequence but can no longer be partially revealed.
        Empty payloads are rejected with InvalidInputError.
        """
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidInputError(
                f"data must be bytes, got {type(data).__name__}", details={"field": "data"},
            )
        if not data:
            raise InvalidInputError("data cannot be empty", details={"field": "data"})
        self._check_binding_key(binding_key)
        payload = bytes(data)
        payload_hashed = int.from_bytes(payload, "little") >= FIELD_MODULUS
        if payload_hashed:
            payload = hashlib.sha256(payload).digest()
        return await self._bind(payload, binding_key, payload_hashed=payload_hashed)

    @staticmethod
    def verify_commitment_format(commitment: Any) -> bool:
        """Structural check only; semantic checks need the producer's opening."""
        if not isinstance(commitment, Commitment):
            return False
        value = commitment.commitment
        if not isinstance(value, str) or len(value) != COMMITMENT_HEX_LENGTH:
            return False
        if value != value.lower():
            return False
        try:
            bytes.fromhex(value)
        except ValueError:
            return False
        return (
            isinstance(commitment.ciphertext, bytes)
            and len(commitment.ciphertext) > 0
            and isinstance(commitment.binding_key, str)
            and bool(commitment.binding_key)
            and isinstance(commitment.timestamp_utc, datetime)
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _check_binding_key(binding_key: Any) -> None:
        if not isinstance(binding_key, str) or not binding_key:
            raise InvalidInputError("binding key must be a non-empty string", details={"field": "binding_key"})

    async def _bind(self, payload: bytes, binding_key: str, payload_hashed: bool) -> Commitment:
        nonce = secrets.token_bytes(NONCE_SIZE)
        commitment = compute_commitment(payload, binding_key, nonce)

        if self.mode == CapabilityMode.LIVE:
            ciphertext = await self._encrypt_live(payload, nonce)
            backend_id = self._service.service_id
        else:
            ciphertext = _xor_stream(payload, nonce)
            backend_id = SIMULATION_BACKEND_ID

        logger.debug("Bound commitment %s to %s (%s)", commitment[:16], short(binding_key), self.mode.value)
        return Commitment(
            ciphertext=ciphertext,
            commitment=commitment,
            binding_key=binding_key,
            timestamp_utc=self._clock(),
            backend_id=backend_id,
            payload_hashed=payload_hashed,
        )

    async def _encrypt_live(self, payload: bytes, nonce: bytes) -> bytes:
        try:
            session = await self._service.key_agreement(self._config.mxe_address)
            sealed = await self._service.encrypt(session.shared_secret, payload, nonce)
            ephemeral_public_key = session.ephemeral_public_key
        except PrismError:
            raise
        except Exception as exc:
            raise PrismError(f"MPC encryption failed: {exc}", code="ENCRYPTION_FAILED") from exc
        # The session is scoped to this call; nothing is kept on self.
        del session
        return ephemeral_public_key + sealed
