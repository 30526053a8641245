"""Runtime configuration, read from the environment and an optional .env file.

Live/simulated selection is driven purely by which service coordinates are
present here; nothing probes the network at configuration time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_CHAIN_ID = 11155111  # Sepolia
DEFAULT_PROGRAM_SEED = "prism-identity-registry-v1"

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class PrismConfig:
    """Service coordinates and operational switches.

    mxe_address is the X25519 public key (hex) of the MPC execution
    environment; together with cluster_id it enables live encryption.
    """
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    registry_address: Optional[str] = None
    chain_id: int = DEFAULT_CHAIN_ID
    program_seed: str = DEFAULT_PROGRAM_SEED
    mxe_address: Optional[str] = None
    cluster_id: Optional[str] = None
    circuit_dir: Optional[Path] = None
    allow_simulation: bool = True
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def mpc_configured(self) -> bool:
        return bool(self.mxe_address) and bool(self.cluster_id)

    @property
    def ledger_configured(self) -> bool:
        return bool(self.rpc_url) and bool(self.private_key) and bool(self.registry_address)

    @classmethod
    def from_mapping(cls, env: Mapping[str, str]) -> PrismConfig:
        """Build a config from an environment-like mapping."""
        circuit_dir = env.get("PRISM_CIRCUIT_DIR")
        chain_id = env.get("PRISM_CHAIN_ID")
        return cls(
            rpc_url=env.get("PRISM_RPC_URL") or None,
            private_key=env.get("PRISM_PRIVATE_KEY") or None,
            registry_address=env.get("PRISM_REGISTRY_ADDRESS") or None,
            chain_id=int(chain_id) if chain_id else DEFAULT_CHAIN_ID,
            program_seed=env.get("PRISM_PROGRAM_SEED") or DEFAULT_PROGRAM_SEED,
            mxe_address=env.get("ARCIUM_MXE_ADDRESS") or None,
            cluster_id=env.get("ARCIUM_CLUSTER_ID") or None,
            circuit_dir=Path(circuit_dir) if circuit_dir else None,
            allow_simulation=_flag(env.get("PRISM_ALLOW_SIMULATION"), True),
            log_level=(env.get("PRISM_LOG_LEVEL") or "INFO").upper(),
            log_json=_flag(env.get("PRISM_LOG_JSON"), False),
        )

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> PrismConfig:
        """Load `env_file` (or a .env in the working directory) then read os.environ.

        Variables already set in the process environment win over the file.
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()
        return cls.from_mapping(os.environ)
