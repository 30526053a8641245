"""Deterministic address derivation — pure, network-free.

Root address:
    keccak256("root" || program_seed || owner_bytes)[-20:]
Context address:
    keccak256("context" || root_bytes || u16_le(index))[-20:]

Both are returned EIP-55 checksummed. The same inputs always give the
same address; nothing here touches the ledger.
"""

from __future__ import annotations

import hashlib
from typing import Any

from web3 import Web3

from prism.config import DEFAULT_PROGRAM_SEED
from prism.errors import InvalidKeyError
from prism.validation import validate_context_index


ROOT_SEED = b"root"
CONTEXT_SEED = b"context"


def normalize_address(value: Any, field: str = "address") -> str:
    """Return the checksummed form of a 20-byte hex address.

    Raises:
        InvalidKeyError: value is not a well-formed address.
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidKeyError(f"Malformed {field}: {value!r}", details={"field": field})
    return Web3.to_checksum_address(value)


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(address[2:])


def _to_address(digest: bytes) -> str:
    return Web3.to_checksum_address("0x" + bytes(digest[-20:]).hex())


def derive_root_address(owner: str, program_seed: str = DEFAULT_PROGRAM_SEED) -> str:
    """Derive the root identity address of `owner`."""
    owner = normalize_address(owner, field="owner")
    digest = Web3.keccak(ROOT_SEED + program_seed.encode("utf-8") + _address_bytes(owner))
    return _to_address(digest)


def derive_context_address(root_address: str, index: int) -> str:
    """Derive the address of context `index` under `root_address`.

    Raises:
        InvalidKeyError: root_address is malformed.
        IndexOutOfRangeError: index is outside the u16 range.
    """
    root_address = normalize_address(root_address, field="root_address")
    validate_context_index(index)
    digest = Web3.keccak(CONTEXT_SEED + _address_bytes(root_address) + index.to_bytes(2, "little"))
    return _to_address(digest)


def hash_root_identity(root_address: str) -> str:
    """SHA-256 of the root address bytes, hex encoded.

    Stored with an encrypted context instead of the root address itself.
    """
    root_address = normalize_address(root_address, field="root_address")
    return hashlib.sha256(_address_bytes(root_address)).hexdigest()
