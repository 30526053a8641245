"""Proving backend contract and the Noir/Barretenberg toolchain driver.

The circuit (circuits/solvency_proof) is

    fn main(actual_balance: u64, threshold: pub u64) -> pub bool

so a proof carries two public field elements: threshold and is_solvent.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence, runtime_checkable

from prism.errors import CapabilityUnavailableError, PrismError

logger = logging.getLogger(__name__)

CIRCUIT_NAME = "solvency_proof"
FIELD_ELEMENT_SIZE = 32


@runtime_checkable
class ProvingBackend(Protocol):
    """Contract for a zero-knowledge proving system.

    load_circuit() raising anything means the backend is unusable and the
    prover falls back to simulation.
    """

    @property
    def backend_id(self) -> str:
        ...

    async def load_circuit(self) -> None:
        ...

    async def prove(self, private_inputs: Dict[str, str], public_inputs: Dict[str, str]) -> bytes:
        ...

    async def verify(self, proof: bytes, public_inputs: Dict[str, str]) -> bool:
        ...


def encode_public_inputs(public_inputs: Dict[str, str]) -> bytes:
    """Concatenated 32-byte big-endian field elements, in circuit order."""
    ordered = (public_inputs["threshold"], public_inputs["is_solvent"])
    return b"".join(int(value).to_bytes(FIELD_ELEMENT_SIZE, "big") for value in ordered)


def _prover_toml(private_inputs: Dict[str, str], public_inputs: Dict[str, str]) -> str:
    lines = [f'actual_balance = "{private_inputs["actual_balance"]}"']
    lines.append(f'threshold = "{public_inputs["threshold"]}"')
    return "\n".join(lines) + "\n"


class NargoBackend:
    """Drives `nargo` (witness generation) and `bb` (UltraHonk prove/verify).

    Args:
        circuit_dir: The Noir package directory holding Nargo.toml.
        timeout: Seconds allowed per toolchain invocation.
    """

    def __init__(self, circuit_dir: Path, timeout: float = 120.0) -> None:
        self._circuit_dir = Path(circuit_dir)
        self._timeout = timeout
        self._nargo: Optional[str] = None
        self._bb: Optional[str] = None
        # nargo reads Prover.toml from the package directory; one witness at a time.
        self._witness_lock = asyncio.Lock()

    @property
    def backend_id(self) -> str:
        return f"noir:{CIRCUIT_NAME}"

    @property
    def artifact_path(self) -> Path:
        return self._circuit_dir / "target" / f"{CIRCUIT_NAME}.json"

    @property
    def vk_path(self) -> Path:
        return self._circuit_dir / "target" / "vk"

    async def load_circuit(self) -> None:
        self._nargo = shutil.which("nargo")
        self._bb = shutil.which("bb")
        if self._nargo is None or self._bb is None:
            raise CapabilityUnavailableError(
                "Noir toolchain not found on PATH (need nargo and bb)",
                details={"nargo": self._nargo, "bb": self._bb},
            )
        if not (self._circuit_dir / "Nargo.toml").is_file():
            raise CapabilityUnavailableError(
                f"No Noir package at {self._circuit_dir}",
                details={"circuit_dir": str(self._circuit_dir)},
            )
        if not self.artifact_path.is_file():
            logger.info("Compiling %s circuit", CIRCUIT_NAME)
            await self._run([self._nargo, "compile"])
        if not self.vk_path.is_file():
            await self._run([
                self._bb, "write_vk",
                "-b", str(self.artifact_path),
                "-o", str(self.vk_path.parent),
            ])

    async def prove(self, private_inputs: Dict[str, str], public_inputs: Dict[str, str]) -> bytes:
        with tempfile.TemporaryDirectory(prefix="prism-proof-") as tmp:
            out_dir = Path(tmp)
            witness_name = f"witness-{out_dir.name}"
            async with self._witness_lock:
                (self._circuit_dir / "Prover.toml").write_text(
                    _prover_toml(private_inputs, public_inputs), encoding="utf-8",
                )
                try:
                    await self._run([self._nargo, "execute", witness_name])
                finally:
                    # The private input must not outlive witness generation.
                    (self._circuit_dir / "Prover.toml").unlink(missing_ok=True)
            witness = self._circuit_dir / "target" / f"{witness_name}.gz"
            try:
                await self._run([
                    self._bb, "prove",
                    "-b", str(self.artifact_path),
                    "-w", str(witness),
                    "-o", str(out_dir),
                ])
            finally:
                witness.unlink(missing_ok=True)
            return (out_dir / "proof").read_bytes()

    async def verify(self, proof: bytes, public_inputs: Dict[str, str]) -> bool:
        with tempfile.TemporaryDirectory(prefix="prism-verify-") as tmp:
            work = Path(tmp)
            (work / "proof").write_bytes(proof)
            (work / "public_inputs").write_bytes(encode_public_inputs(public_inputs))
            try:
                await self._run([
                    self._bb, "verify",
                    "-k", str(self.vk_path),
                    "-p", str(work / "proof"),
                    "-i", str(work / "public_inputs"),
                ])
            except PrismError as exc:
                logger.info("Proof rejected by verifier: %s", exc)
                return False
            return True

    async def _run(self, cmd: Sequence[str]) -> str:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(self._circuit_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise PrismError(
                f"{Path(cmd[0]).name} {cmd[1]} timed out after {self._timeout}s",
                code="PROVER_TIMEOUT",
            ) from exc
        if process.returncode != 0:
            raise PrismError(
                f"{Path(cmd[0]).name} {cmd[1]} failed: {stderr.decode(errors='replace').strip()}",
                code="PROVER_TOOLCHAIN_FAILED",
                details={"returncode": process.returncode},
            )
        return stdout.decode(errors="replace")
