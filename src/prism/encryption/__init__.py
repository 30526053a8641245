"""Encryption layer — commitment binding over an MPC service or its simulation."""

from prism.encryption.binder import CommitmentBinder, compute_commitment, encode_secret
from prism.encryption.mpc import MPCEncryptionService, SessionKey, X25519MPCClient

__all__ = [
    "CommitmentBinder",
    "compute_commitment",
    "encode_secret",
    "MPCEncryptionService",
    "SessionKey",
    "X25519MPCClient",
]
