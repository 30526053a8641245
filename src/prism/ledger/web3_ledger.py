"""EVM ledger adapter — identity registry contract over web3.

The registry contract keeps root and context records keyed by the same
derived addresses this package computes off-chain. Each write is a signed
transaction from the owner's account; the call waits for one receipt.

Failure mapping at this boundary:
    revert / RPC refusal before broadcast  -> RejectedError (reason classified)
    receipt wait timeout / transport error -> IndeterminateError

web3's HTTP provider is synchronous; calls run in a worker thread so the
core stays a single cooperative event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from prism.config import PrismConfig
from prism.errors import IndeterminateError, PrismError, RejectedError, RejectionReason
from prism.identity.derivation import derive_context_address, derive_root_address, normalize_address
from prism.logging_config import short
from prism.models.identity import ContextIdentity, ContextType, PrivacyLevel, RootIdentity

logger = logging.getLogger(__name__)

T = TypeVar("T")

REGISTRY_ABI = [
    {
        "type": "function", "name": "createRootIdentity", "stateMutability": "nonpayable",
        "inputs": [{"name": "privacyLevel", "type": "uint8"}], "outputs": [],
    },
    {
        "type": "function", "name": "createContext", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "contextIndex", "type": "uint16"},
            {"name": "contextType", "type": "uint8"},
            {"name": "maxPerTransaction", "type": "uint64"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "revokeContext", "stateMutability": "nonpayable",
        "inputs": [{"name": "contextIndex", "type": "uint16"}], "outputs": [],
    },
    {
        "type": "function", "name": "updatePrivacyLevel", "stateMutability": "nonpayable",
        "inputs": [{"name": "privacyLevel", "type": "uint8"}], "outputs": [],
    },
    {
        "type": "function", "name": "rootIdentityOf", "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [
            {"name": "createdAt", "type": "int64"},
            {"name": "privacyLevel", "type": "uint8"},
            {"name": "contextCount", "type": "uint16"},
            {"name": "exists", "type": "bool"},
        ],
    },
    {
        "type": "function", "name": "contextIdentityAt", "stateMutability": "view",
        "inputs": [{"name": "context", "type": "address"}],
        "outputs": [
            {"name": "rootIdentity", "type": "address"},
            {"name": "contextType", "type": "uint8"},
            {"name": "createdAt", "type": "int64"},
            {"name": "maxPerTransaction", "type": "uint64"},
            {"name": "totalSpent", "type": "uint64"},
            {"name": "revoked", "type": "bool"},
            {"name": "contextIndex", "type": "uint16"},
            {"name": "exists", "type": "bool"},
        ],
    },
]

# Substrings seen in revert reasons and RPC errors, checked in order.
_REJECTION_PATTERNS = (
    ("insufficient funds", RejectionReason.INSUFFICIENT_FUNDS),
    ("contextalreadyrevoked", RejectionReason.ALREADY_REVOKED),
    ("already revoked", RejectionReason.ALREADY_REVOKED),
    ("already in use", RejectionReason.ALREADY_EXISTS),
    ("already exists", RejectionReason.ALREADY_EXISTS),
    ("unauthorized", RejectionReason.UNAUTHORIZED),
    ("contextrevoked", RejectionReason.CONTEXT_REVOKED),
    ("context is revoked", RejectionReason.CONTEXT_REVOKED),
    ("exceedstransactionlimit", RejectionReason.EXCEEDS_TRANSACTION_LIMIT),
    ("invalidprivacylevel", RejectionReason.INVALID_PRIVACY_LEVEL),
    ("invalidcontexttype", RejectionReason.INVALID_CONTEXT_TYPE),
    ("index mismatch", RejectionReason.INDEX_MISMATCH),
    ("not found", RejectionReason.NOT_FOUND),
)

# The node has (or may have) the transaction already; the effect is unknown.
_INDETERMINATE_PATTERNS = ("already known", "nonce too low", "replacement transaction underpriced")


def classify_rejection(message: str) -> RejectionReason:
    """Map a ledger error message onto a RejectionReason."""
    lowered = message.lower()
    for pattern, reason in _REJECTION_PATTERNS:
        if pattern in lowered:
            return reason
    return RejectionReason.OTHER


def translate_error(exc: Exception, operation: str) -> PrismError:
    """Translate a web3 / transport exception into the error taxonomy."""
    if isinstance(exc, PrismError):
        return exc
    message = str(exc)
    if isinstance(exc, (TimeExhausted, asyncio.TimeoutError, OSError)):
        return IndeterminateError(
            f"{operation}: outcome unknown ({type(exc).__name__}); re-query before retrying",
            details={"operation": operation},
        )
    if any(p in message.lower() for p in _INDETERMINATE_PATTERNS):
        return IndeterminateError(
            f"{operation}: {message}", details={"operation": operation},
        )
    if isinstance(exc, (ContractLogicError, Web3Exception, ValueError)):
        return RejectedError(
            f"{operation} rejected: {message}",
            classify_rejection(message),
            details={"operation": operation},
        )
    return IndeterminateError(f"{operation}: {message}", details={"operation": operation})


class Web3Ledger:
    """LedgerService backed by an identity registry contract.

    Usage:
        ledger = Web3Ledger.from_config(PrismConfig.from_env())
        root = await ledger.create_root(ledger.account_address, PrivacyLevel.HIGH)
    """

    def __init__(
        self,
        w3: Web3,
        registry_address: str,
        private_key: str,
        chain_id: int,
        program_seed: str,
        gas: int = 250_000,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._w3 = w3
        self._account = Account.from_key(private_key)
        self._contract = w3.eth.contract(
            address=Web3.to_checksum_address(registry_address), abi=REGISTRY_ABI,
        )
        self._chain_id = chain_id
        self._program_seed = program_seed
        self._gas = gas
        self._receipt_timeout = receipt_timeout

    @classmethod
    def from_config(cls, config: PrismConfig) -> Web3Ledger:
        if not config.ledger_configured:
            raise PrismError(
                "Ledger not configured: set PRISM_RPC_URL, PRISM_PRIVATE_KEY and PRISM_REGISTRY_ADDRESS",
                code="LEDGER_NOT_CONFIGURED",
            )
        return cls(
            Web3(HTTPProvider(config.rpc_url)),
            registry_address=config.registry_address,
            private_key=config.private_key,
            chain_id=config.chain_id,
            program_seed=config.program_seed,
        )

    @property
    def account_address(self) -> str:
        return self._account.address

    # ------------------------------------------------------------------
    # LedgerService
    # ------------------------------------------------------------------

    async def create_root(self, owner: str, privacy_level: PrivacyLevel) -> RootIdentity:
        self._require_signer(owner)
        await self._transact("create_root", self._contract.functions.createRootIdentity(int(privacy_level)))
        root = await self.fetch_root(owner)
        if root is None:
            raise IndeterminateError("create_root confirmed but root not readable yet")
        return root

    async def create_context(
        self,
        root_address: str,
        index: int,
        context_type: ContextType,
        max_per_transaction: int,
    ) -> ContextIdentity:
        self._require_own_root(root_address)
        call = self._contract.functions.createContext(index, int(context_type), max_per_transaction)
        await self._transact("create_context", call)
        context = await self.fetch_context(derive_context_address(root_address, index))
        if context is None:
            raise IndeterminateError("create_context confirmed but context not readable yet")
        return context

    async def revoke_context(self, root_address: str, index: int) -> ContextIdentity:
        self._require_own_root(root_address)
        await self._transact("revoke_context", self._contract.functions.revokeContext(index))
        context = await self.fetch_context(derive_context_address(root_address, index))
        if context is None:
            raise IndeterminateError("revoke_context confirmed but context not readable yet")
        return context

    async def fetch_root(self, owner: str) -> Optional[RootIdentity]:
        owner = normalize_address(owner, field="owner")
        created_at, level, count, exists = await self._call(
            "fetch_root", self._contract.functions.rootIdentityOf(owner).call,
        )
        if not exists:
            return None
        return RootIdentity(
            owner=owner,
            address=derive_root_address(owner, self._program_seed),
            privacy_level=PrivacyLevel(level),
            created_utc=datetime.fromtimestamp(created_at, tz=timezone.utc),
            context_count=count,
        )

    async def fetch_context(self, address: str) -> Optional[ContextIdentity]:
        address = normalize_address(address)
        (root, ctype, created_at, ceiling, spent, revoked, index, exists) = await self._call(
            "fetch_context", self._contract.functions.contextIdentityAt(address).call,
        )
        if not exists:
            return None
        return ContextIdentity(
            address=address,
            root_address=Web3.to_checksum_address(root),
            context_type=ContextType(ctype),
            context_index=index,
            max_per_transaction=ceiling,
            created_utc=datetime.fromtimestamp(created_at, tz=timezone.utc),
            total_spent=spent,
            revoked=revoked,
        )

    async def update_privacy_level(self, owner: str, privacy_level: PrivacyLevel) -> RootIdentity:
        self._require_signer(owner)
        await self._transact("update_privacy_level", self._contract.functions.updatePrivacyLevel(int(privacy_level)))
        root = await self.fetch_root(owner)
        if root is None:
            raise IndeterminateError("update_privacy_level confirmed but root not readable")
        return root

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_signer(self, owner: str) -> None:
        if normalize_address(owner, field="owner") != self._account.address:
            raise RejectedError(
                f"Signer {short(self._account.address)} does not own {short(owner)}",
                RejectionReason.UNAUTHORIZED,
            )

    def _require_own_root(self, root_address: str) -> None:
        expected = derive_root_address(self._account.address, self._program_seed)
        if normalize_address(root_address, field="root_address") != expected:
            raise RejectedError(
                f"Root {short(root_address)} is not owned by the signer",
                RejectionReason.UNAUTHORIZED,
            )

    async def _call(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except Exception as exc:
            raise translate_error(exc, operation) from exc

    async def _transact(self, operation: str, call: Any) -> Any:
        """Sign, broadcast and wait for one receipt.

        Broadcast is the point of no return: anything failing after it is
        indeterminate, never rejected.
        """
        def build_and_sign() -> bytes:
            tx = call.build_transaction({
                "from": self._account.address,
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "gas": self._gas,
                "chainId": self._chain_id,
            })
            return self._account.sign_transaction(tx).raw_transaction

        raw = await self._call(operation, build_and_sign)
        tx_hash = await self._call(operation, lambda: self._w3.eth.send_raw_transaction(raw))
        logger.info("%s: sent %s", operation, short(bytes(tx_hash).hex(), 18))

        try:
            receipt = await asyncio.to_thread(
                self._w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self._receipt_timeout,
            )
        except Exception as exc:
            error = translate_error(exc, operation)
            if isinstance(error, RejectedError):
                error = IndeterminateError(f"{operation}: {exc}", details={"operation": operation})
            raise error from exc

        if receipt.status != 1:
            raise RejectedError(f"{operation} reverted in block {receipt.blockNumber}", RejectionReason.OTHER)
        logger.info("%s: confirmed in block %s", operation, receipt.blockNumber)
        return receipt
