"""Shared fixtures — owners, ledgers and a fake proving backend."""

import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Dict

import pytest
from nacl.public import PrivateKey

from prism.config import PrismConfig
from prism.errors import IndeterminateError
from prism.identity.manager import IdentityManager
from prism.ledger.memory import InMemoryLedger


OWNER = "0x52908400098527886E0F7030069857D2E4169EE7"
OTHER_OWNER = "0xde709f2102306220921060314715629080e2fb77"


def fixed_now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeProvingBackend:
    """HMAC over the public inputs stands in for a real proof.

    Verification recomputes the MAC, so altering any public input after
    proving makes verification fail, exactly like a real verifier.
    """

    backend_id = "fake-hmac"

    def __init__(self, fail_load: bool = False) -> None:
        self._key = b"prism-test-proving-key"
        self.fail_load = fail_load
        self.load_calls = 0
        self.prove_calls = 0
        self.last_private_inputs: Dict[str, str] = {}

    def _mac(self, public_inputs: Dict[str, str]) -> bytes:
        message = json.dumps(public_inputs, sort_keys=True).encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).digest()

    async def load_circuit(self) -> None:
        self.load_calls += 1
        await asyncio.sleep(0)
        if self.fail_load:
            raise RuntimeError("circuit artifact not found")

    async def prove(self, private_inputs: Dict[str, str], public_inputs: Dict[str, str]) -> bytes:
        self.prove_calls += 1
        self.last_private_inputs = dict(private_inputs)
        return self._mac(public_inputs)

    async def verify(self, proof: bytes, public_inputs: Dict[str, str]) -> bool:
        return hmac.compare_digest(proof, self._mac(public_inputs))


class FlakyLedger(InMemoryLedger):
    """Applies the effect, then reports IndeterminateError once per named operation."""

    def __init__(self, *operations: str) -> None:
        super().__init__(clock=fixed_now)
        self._pending = set(operations)

    def _lose_response(self, operation: str) -> None:
        if operation in self._pending:
            self._pending.discard(operation)
            raise IndeterminateError(f"{operation}: connection reset after broadcast")

    async def create_root(self, owner, privacy_level):
        root = await super().create_root(owner, privacy_level)
        self._lose_response("create_root")
        return root

    async def create_context(self, root_address, index, context_type, max_per_transaction):
        context = await super().create_context(root_address, index, context_type, max_per_transaction)
        self._lose_response("create_context")
        return context

    async def revoke_context(self, root_address, index):
        context = await super().revoke_context(root_address, index)
        self._lose_response("revoke_context")
        return context


class SlowLedger(InMemoryLedger):
    """Every read stalls long enough to trip a short timeout."""

    async def fetch_root(self, owner):
        await asyncio.sleep(1.0)
        return await super().fetch_root(owner)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger(clock=fixed_now)


@pytest.fixture
def manager(ledger: InMemoryLedger) -> IdentityManager:
    return IdentityManager(ledger)


@pytest.fixture
def proving_backend() -> FakeProvingBackend:
    return FakeProvingBackend()


@pytest.fixture
def live_mpc_config() -> PrismConfig:
    service_key = PrivateKey.generate().public_key
    return PrismConfig(mxe_address="0x" + bytes(service_key).hex(), cluster_id="cluster-7")
