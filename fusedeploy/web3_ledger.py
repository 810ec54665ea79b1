"""
web3.py ledger collaborator.

Deploys through the deterministic-deployment proxy: the transaction sends
`salt ++ init_code` to the proxy, which CREATE2-deploys the contract at
keccak256(0xff ++ proxy ++ salt ++ keccak256(init_code))[12:]. The same
init code feeds IdentityDeriver, so identities predicted before a run match
the addresses the proxy produces.

Compiled contracts are read from Hardhat artifacts:

    <artifacts_dir>/contracts/**/<Contract>.sol/<Contract>.json   {"abi": [...], "bytecode": "0x..."}
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

import aiohttp
from eth_abi import encode as abi_encode
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .config import DeployConfig, NetworkConfig
from .errors import AlreadySatisfied, ConfigError, DeployError, LedgerRejection
from .identity import DETERMINISTIC_DEPLOYER, IdentityDeriver, compute_create2_address
from .ledger import CallReceipt, DeployReceipt
from .secrets import SecretsProvider, resolve_signing_keys

logger = logging.getLogger(__name__)

# Revert reasons meaning "this initialization already happened".
ALREADY_SATISFIED_MARKERS = (
    "already initialized",
    "contract is already initialized",
)

# Raised by the HTTP transport when the node cannot be reached or answers
# with an error status.
TRANSPORT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)

LEDGER_ERRORS = (Web3Exception, ValueError, *TRANSPORT_ERRORS)


def _abi_type(param: dict[str, Any]) -> str:
    """ABI type string for a constructor input, expanding tuple components."""
    type_str = str(param["type"])
    if type_str.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({inner}){type_str[len('tuple'):]}"
    return type_str


def encode_constructor_args(abi: list[dict[str, Any]], args: Sequence[Any]) -> bytes:
    constructor = next((entry for entry in abi if entry.get("type") == "constructor"), None)
    inputs = constructor.get("inputs", []) if constructor else []
    if len(inputs) != len(args):
        raise ValueError(f"constructor expects {len(inputs)} argument(s), got {len(args)}")
    if not inputs:
        return b""
    return abi_encode([_abi_type(i) for i in inputs], list(args))


class HardhatArtifacts:
    """Compiled contract lookup by contract name; also an InitCodeSource."""

    def __init__(self, artifacts_dir: Path):
        self.artifacts_dir = artifacts_dir
        self._cache: dict[str, dict[str, Any]] = {}

    def load(self, contract: str) -> dict[str, Any]:
        if contract in self._cache:
            return self._cache[contract]

        candidates = sorted(self.artifacts_dir.rglob(f"{contract}.json")) if self.artifacts_dir.exists() else []
        if not candidates:
            raise ConfigError(f"No compiled artifact for {contract} under {self.artifacts_dir}")

        data = json.loads(candidates[0].read_text(encoding="utf-8"))
        if not isinstance(data, dict) or "abi" not in data or "bytecode" not in data:
            raise ConfigError(f"{candidates[0]} is not a Hardhat artifact (needs abi and bytecode)")

        self._cache[contract] = data
        return data

    def abi(self, contract: str) -> list[dict[str, Any]]:
        return list(self.load(contract)["abi"])

    def bytecode(self, contract: str) -> bytes:
        raw = str(self.load(contract)["bytecode"])
        return bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)

    def init_code(self, contract: str, args: Sequence[Any]) -> bytes:
        return self.bytecode(contract) + encode_constructor_args(self.abi(contract), args)


class Web3Ledger:
    """LedgerClient and EnvironmentSource backed by an AsyncWeb3 connection."""

    def __init__(
        self,
        w3: AsyncWeb3,
        artifacts: HardhatArtifacts,
        *,
        signers: Mapping[str, str] | None = None,
        receipt_timeout: float = 120.0,
        factory: str = DETERMINISTIC_DEPLOYER,
        expected_chain_id: str | None = None,
    ):
        self.w3 = w3
        self.artifacts = artifacts
        self.receipt_timeout = receipt_timeout
        self.factory = Web3.to_checksum_address(factory)
        self.expected_chain_id = expected_chain_id
        # sender address -> private key; senders without a key rely on node-unlocked accounts
        self._signers = {Account.from_key(key).address: key for key in (signers or {}).values()}

    def deriver(self) -> IdentityDeriver:
        return IdentityDeriver(factory=self.factory, source=self.artifacts)

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        await self.w3.provider.disconnect()

    async def current_environment_id(self) -> str:
        try:
            chain_id = str(await self.w3.eth.chain_id)
        except LEDGER_ERRORS as exc:
            raise self._translate(exc, "read chain id") from exc
        if self.expected_chain_id is not None and chain_id != self.expected_chain_id:
            raise ConfigError(f"Node reports chain id {chain_id}, config expects {self.expected_chain_id}")
        return chain_id

    async def has_code(self, identity: str) -> bool:
        try:
            code = await self.w3.eth.get_code(Web3.to_checksum_address(identity))
        except LEDGER_ERRORS as exc:
            raise self._translate(exc, f"get_code {identity}") from exc
        return len(code) > 0

    async def deploy(
        self,
        contract: str,
        args: Sequence[Any],
        deployer: str,
        salt: bytes,
    ) -> DeployReceipt:
        what = f"deploy {contract}"
        init_code = self.artifacts.init_code(contract, args)
        address = compute_create2_address(self.factory, salt, bytes(Web3.keccak(init_code)))

        tx = {
            "from": deployer,
            "to": self.factory,
            "data": Web3.to_hex(salt + init_code),
        }
        receipt = await self._transact(tx, what)
        tx_hash = Web3.to_hex(receipt["transactionHash"])

        if not await self.has_code(address):
            raise LedgerRejection(f"{what}: no code at {address} after confirmation", tx_hash=tx_hash)
        return DeployReceipt(address=address, tx_hash=tx_hash, block_number=receipt.get("blockNumber"))

    async def call(
        self,
        identity: str,
        operation: str,
        args: Sequence[Any],
        caller: str,
        *,
        contract: str,
    ) -> CallReceipt:
        what = f"{contract}.{operation}"
        instance = self.w3.eth.contract(address=Web3.to_checksum_address(identity), abi=self.artifacts.abi(contract))
        try:
            function = instance.get_function_by_name(operation)(*args)
            tx = await function.build_transaction({"from": Web3.to_checksum_address(caller)})
        except LEDGER_ERRORS as exc:
            raise self._translate(exc, what) from exc

        receipt = await self._transact(dict(tx), what)
        return CallReceipt(tx_hash=Web3.to_hex(receipt["transactionHash"]), block_number=receipt.get("blockNumber"))

    # -------------------------------------------------------------------------
    # Private helpers
    # -------------------------------------------------------------------------

    async def _transact(self, tx: dict[str, Any], what: str) -> Any:
        sender = Web3.to_checksum_address(tx["from"])
        tx["from"] = sender
        tx_hash = None
        try:
            key = self._signers.get(sender)
            if key is not None:
                tx.setdefault("nonce", await self.w3.eth.get_transaction_count(sender, "pending"))
                tx.setdefault("chainId", await self.w3.eth.chain_id)
                if "gas" not in tx:
                    tx["gas"] = await self.w3.eth.estimate_gas(tx)
                if "gasPrice" not in tx and "maxFeePerGas" not in tx:
                    tx["gasPrice"] = await self.w3.eth.gas_price
                signed = Account.sign_transaction(tx, key)
                tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            else:
                tx_hash = await self.w3.eth.send_transaction(tx)
            logger.debug("%s: sent %s", what, Web3.to_hex(tx_hash))
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except LEDGER_ERRORS as exc:
            raise self._translate(exc, what, tx_hash=Web3.to_hex(tx_hash) if tx_hash else None) from exc

        if receipt["status"] != 1:
            raise LedgerRejection(f"{what}: transaction reverted", tx_hash=Web3.to_hex(receipt["transactionHash"]))
        return receipt

    @staticmethod
    def _translate(exc: Exception, what: str, *, tx_hash: str | None = None) -> DeployError:
        message = str(exc)
        if isinstance(exc, ContractLogicError) and any(m in message.lower() for m in ALREADY_SATISFIED_MARKERS):
            return AlreadySatisfied(f"{what}: {message}")
        if isinstance(exc, TimeExhausted):
            return LedgerRejection(f"{what}: timed out waiting for receipt", tx_hash=tx_hash)
        if isinstance(exc, asyncio.TimeoutError):
            return LedgerRejection(f"{what}: node request timed out", tx_hash=tx_hash)
        if isinstance(exc, TRANSPORT_ERRORS):
            return LedgerRejection(f"{what}: node unreachable ({type(exc).__name__}: {message})", tx_hash=tx_hash)
        return LedgerRejection(f"{what}: {message}", tx_hash=tx_hash)


class NetworkAccounts:
    """Named accounts from config, plus the addresses of configured signing keys."""

    def __init__(self, network: NetworkConfig, keys: Mapping[str, str] | None = None):
        self.network = network
        self.keys = dict(keys or {})

    def named_accounts(self) -> dict[str, str]:
        accounts: dict[str, str] = {}
        for role, address in self.network.accounts.items():
            if not Web3.is_address(address):
                raise ConfigError(f"networks.{self.network.name}.accounts.{role} is not an address")
            accounts[role] = Web3.to_checksum_address(address)

        for role, key in self.keys.items():
            derived = Account.from_key(key).address
            if role in accounts and accounts[role] != derived:
                raise ConfigError(f"Key for role {role!r} signs as {derived}, but accounts.{role} is {accounts[role]}")
            accounts[role] = derived
        return accounts


def connect(
    config: DeployConfig,
    network_name: str,
    *,
    secrets: SecretsProvider | None = None,
    signing: bool = True,
) -> tuple[Web3Ledger, NetworkAccounts]:
    """
    Build the web3 ledger and account resolver for a configured network.

    With signing=False no key references are resolved; the ledger can still
    read chain state.
    """
    network = config.network(network_name)
    keys = resolve_signing_keys(network.keys, secrets) if signing else {}
    w3 = AsyncWeb3(AsyncHTTPProvider(network.rpc_url))
    ledger = Web3Ledger(
        w3,
        HardhatArtifacts(config.artifacts_dir),
        signers=keys,
        receipt_timeout=config.receipt_timeout,
        expected_chain_id=network.chain_id,
    )
    return ledger, NetworkAccounts(network, keys)
