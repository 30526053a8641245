"""Identity layer — address derivation and root/context lifecycle."""

from prism.identity.derivation import (
    derive_context_address,
    derive_root_address,
    hash_root_identity,
    normalize_address,
)
from prism.identity.manager import IdentityManager

__all__ = [
    "IdentityManager",
    "derive_context_address",
    "derive_root_address",
    "hash_root_identity",
    "normalize_address",
]
