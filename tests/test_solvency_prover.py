"""Tests for the solvency prover — proves the infeasibility boundary and live tamper detection."""

import asyncio

import pytest

from prism.config import PrismConfig
from prism.errors import (
    CapabilityUnavailableError,
    InvalidInputError,
    PrismError,
    ProofInfeasibleError,
    ValueTooLargeError,
)
from prism.models.identity import MAX_U64
from prism.models.proof import CapabilityMode, PublicInputs
from prism.proofs.backend import NargoBackend, ProvingBackend, encode_public_inputs
from prism.proofs.prover import ProverState, SolvencyProver

from conftest import FakeProvingBackend, fixed_now


CONTEXT = "0x3333333333333333333333333333333333333333"


class ExplodingBackend(FakeProvingBackend):
    async def prove(self, private_inputs, public_inputs):
        raise RuntimeError("witness generation failed")

    async def verify(self, proof, public_inputs):
        raise RuntimeError("verifier crashed")


@pytest.fixture
def live(proving_backend: FakeProvingBackend) -> SolvencyProver:
    return SolvencyProver(backend=proving_backend, clock=fixed_now)


@pytest.fixture
def simulated() -> SolvencyProver:
    return SolvencyProver(clock=fixed_now)


class TestInitialization:
    def test_starts_uninitialized(self, live: SolvencyProver) -> None:
        assert live.state == ProverState.UNINITIALIZED
        assert not live.status().initialized

    @pytest.mark.asyncio
    async def test_live_when_circuit_loads(self, live: SolvencyProver) -> None:
        status = await live.initialize()
        assert live.state == ProverState.READY
        assert status.mode == CapabilityMode.LIVE
        assert status.backend_id == "fake-hmac"
        await live.require_live()

    @pytest.mark.asyncio
    async def test_simulated_without_backend(self, simulated: SolvencyProver) -> None:
        status = await simulated.initialize()
        assert status.mode == CapabilityMode.SIMULATED
        assert status.backend_id == "SIMULATION"

    @pytest.mark.asyncio
    async def test_simulated_when_load_fails(self) -> None:
        prover = SolvencyProver(backend=FakeProvingBackend(fail_load=True))
        status = await prover.initialize()
        assert status.initialized
        assert status.mode == CapabilityMode.SIMULATED
        with pytest.raises(CapabilityUnavailableError):
            await prover.require_live()

    @pytest.mark.asyncio
    async def test_concurrent_initialize_loads_once(self, proving_backend: FakeProvingBackend) -> None:
        prover = SolvencyProver(backend=proving_backend)
        await asyncio.gather(*(prover.initialize() for _ in range(10)))
        assert proving_backend.load_calls == 1

    @pytest.mark.asyncio
    async def test_missing_toolchain_downgrades(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("PATH", str(tmp_path))
        prover = SolvencyProver(config=PrismConfig(circuit_dir=tmp_path))
        status = await prover.initialize()
        assert status.mode == CapabilityMode.SIMULATED

    def test_circuit_info(self) -> None:
        info = SolvencyProver.circuit_info()
        assert info["name"] == "solvency_proof"
        assert "threshold (public)" in info["inputs"]


class TestInputChecks:
    @pytest.mark.asyncio
    async def test_below_threshold_is_infeasible(self, live: SolvencyProver, proving_backend) -> None:
        with pytest.raises(ProofInfeasibleError):
            await live.generate_proof(50, 100)
        assert proving_backend.prove_calls == 0

    @pytest.mark.asyncio
    async def test_equal_to_threshold_succeeds(self, live: SolvencyProver) -> None:
        proof = await live.generate_proof(100, 100)
        assert proof.is_solvent
        assert proof.threshold == 100

    @pytest.mark.asyncio
    async def test_negative_value(self, live: SolvencyProver) -> None:
        with pytest.raises(InvalidInputError):
            await live.generate_proof(-1, 0)

    @pytest.mark.asyncio
    async def test_negative_threshold(self, live: SolvencyProver) -> None:
        with pytest.raises(InvalidInputError):
            await live.generate_proof(10, -1)

    @pytest.mark.asyncio
    async def test_non_integer(self, live: SolvencyProver) -> None:
        with pytest.raises(InvalidInputError):
            await live.generate_proof(10.0, 1)

    @pytest.mark.asyncio
    async def test_value_above_u64(self, live: SolvencyProver, proving_backend) -> None:
        with pytest.raises(ValueTooLargeError):
            await live.generate_proof(MAX_U64 + 1, 0)
        assert proving_backend.load_calls == 0
        assert proving_backend.prove_calls == 0

    @pytest.mark.asyncio
    async def test_threshold_above_u64(self, live: SolvencyProver, proving_backend) -> None:
        with pytest.raises(ValueTooLargeError) as exc_info:
            await live.generate_proof(MAX_U64 + 1, MAX_U64 + 1)
        assert exc_info.value.details["field"] == "actual_value"
        assert proving_backend.prove_calls == 0

    @pytest.mark.asyncio
    async def test_u64_max_is_provable(self, simulated: SolvencyProver) -> None:
        proof = await simulated.generate_proof(MAX_U64, MAX_U64)
        assert proof.threshold == MAX_U64

    @pytest.mark.asyncio
    async def test_checks_precede_initialization(self, live: SolvencyProver) -> None:
        with pytest.raises(ProofInfeasibleError):
            await live.generate_proof(1, 2)
        assert live.state == ProverState.UNINITIALIZED


class TestLiveProofs:
    @pytest.mark.asyncio
    async def test_private_input_goes_to_backend(self, live: SolvencyProver, proving_backend) -> None:
        proof = await live.generate_proof(500_000, 10_000)
        assert proving_backend.last_private_inputs == {"actual_balance": "500000"}
        assert proof.mode == CapabilityMode.LIVE
        assert proof.public_inputs == PublicInputs(threshold=10_000, is_solvent=True)
        assert b"500000" not in proof.proof

    @pytest.mark.asyncio
    async def test_verifies(self, live: SolvencyProver) -> None:
        proof = await live.generate_proof(500_000, 10_000)
        assert await live.verify_proof(proof)

    @pytest.mark.asyncio
    async def test_tampered_threshold_fails(self, live: SolvencyProver) -> None:
        proof = await live.generate_proof(500_000, 10_000)
        forged = proof.with_public_inputs(PublicInputs(threshold=1, is_solvent=True))
        assert not await live.verify_proof(forged)

    @pytest.mark.asyncio
    async def test_flipped_solvency_fails(self, live: SolvencyProver) -> None:
        proof = await live.generate_proof(500_000, 10_000)
        flipped = proof.with_public_inputs(PublicInputs(threshold=10_000, is_solvent=False))
        assert not await live.verify_proof(flipped)

    @pytest.mark.asyncio
    async def test_context_tag(self, live: SolvencyProver) -> None:
        proof = await live.generate_proof(10, 1, context_address=CONTEXT)
        assert proof.context_address == CONTEXT
        assert await live.verify_proof(proof)

    @pytest.mark.asyncio
    async def test_backend_failure_is_not_hidden(self) -> None:
        prover = SolvencyProver(backend=ExplodingBackend())
        with pytest.raises(PrismError) as exc_info:
            await prover.generate_proof(10, 1)
        assert exc_info.value.code == "PROOF_GENERATION_FAILED"

    @pytest.mark.asyncio
    async def test_verifier_error_is_false(self, live: SolvencyProver) -> None:
        proof = await live.generate_proof(10, 1)
        assert not await SolvencyProver(backend=ExplodingBackend()).verify_proof(proof)


class TestSimulatedProofs:
    @pytest.mark.asyncio
    async def test_tagged_bytes(self, simulated: SolvencyProver) -> None:
        proof = await simulated.generate_proof(500, 100)
        ts_ms = int(fixed_now().timestamp() * 1000)
        assert proof.proof == f"SIMULATED_PROOF_100_{ts_ms}".encode()
        assert proof.mode == CapabilityMode.SIMULATED
        assert proof.timestamp_utc == fixed_now()

    @pytest.mark.asyncio
    async def test_verification_reads_public_inputs(self, simulated: SolvencyProver) -> None:
        proof = await simulated.generate_proof(500, 100)
        assert await simulated.verify_proof(proof)
        flipped = proof.with_public_inputs(PublicInputs(threshold=100, is_solvent=False))
        assert not await simulated.verify_proof(flipped)

    @pytest.mark.asyncio
    async def test_no_tamper_resistance(self, simulated: SolvencyProver) -> None:
        proof = await simulated.generate_proof(500, 100)
        forged = proof.with_public_inputs(PublicInputs(threshold=10**9, is_solvent=True))
        assert await simulated.verify_proof(forged)

    @pytest.mark.asyncio
    async def test_rejects_non_proof(self, simulated: SolvencyProver) -> None:
        assert not await simulated.verify_proof({"is_solvent": True})


class TestNargoBackend:
    def test_satisfies_protocol(self, tmp_path) -> None:
        assert isinstance(NargoBackend(tmp_path), ProvingBackend)

    @pytest.mark.asyncio
    async def test_load_without_toolchain(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("PATH", str(tmp_path))
        with pytest.raises(CapabilityUnavailableError):
            await NargoBackend(tmp_path).load_circuit()

    def test_public_input_encoding(self) -> None:
        encoded = encode_public_inputs({"threshold": "258", "is_solvent": "1"})
        assert len(encoded) == 64
        assert encoded[30:32] == b"\x01\x02"
        assert encoded[63] == 1
