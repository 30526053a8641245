"""MPC encryption service contract and its X25519 client.

The binder never holds a long-lived key. For every encryption it asks the
service for a fresh key agreement, uses the shared secret once and drops it.
The ephemeral public key travels in front of the ciphertext so the MPC
cluster can derive the same secret on its side.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey
from nacl.secret import SecretBox

from prism.errors import InvalidKeyError


NONCE_SIZE = SecretBox.NONCE_SIZE  # 24 bytes
KEY_SIZE = PublicKey.SIZE  # 32 bytes


@dataclass(frozen=True)
class SessionKey:
    """Material from one key agreement. Used for exactly one encryption."""
    shared_secret: bytes
    ephemeral_public_key: bytes


@runtime_checkable
class MPCEncryptionService(Protocol):

    @property
    def service_id(self) -> str:
        ...

    async def key_agreement(self, service_address: str) -> SessionKey:
        ...

    async def encrypt(self, shared_secret: bytes, plaintext: bytes, nonce: bytes) -> bytes:
        ...


def parse_service_key(service_address: str) -> PublicKey:
    """Decode the hex X25519 public key of an MPC execution environment."""
    try:
        raw = bytes.fromhex(service_address.removeprefix("0x"))
        return PublicKey(raw)
    except (ValueError, TypeError, CryptoError) as exc:
        raise InvalidKeyError(
            f"MPC service address must be a {KEY_SIZE}-byte hex X25519 key",
            details={"field": "mxe_address"},
        ) from exc


class X25519MPCClient:
    """Curve25519 key agreement + XSalsa20-Poly1305, via PyNaCl.

    Args:
        cluster_id: Opaque identifier of the MPC cluster; reported as the
            backend id on every commitment it produces.
    """

    def __init__(self, cluster_id: str) -> None:
        self._cluster_id = cluster_id

    @property
    def service_id(self) -> str:
        return self._cluster_id

    async def key_agreement(self, service_address: str) -> SessionKey:
        service_key = parse_service_key(service_address)
        ephemeral = PrivateKey.generate()
        shared = Box(ephemeral, service_key).shared_key()
        return SessionKey(shared_secret=shared, ephemeral_public_key=bytes(ephemeral.public_key))

    async def encrypt(self, shared_secret: bytes, plaintext: bytes, nonce: bytes) -> bytes:
        return SecretBox(shared_secret).encrypt(plaintext, nonce).ciphertext
