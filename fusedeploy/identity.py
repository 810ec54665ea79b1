"""
Deterministic artifact identities.

An identity is the CREATE2 address an artifact will occupy once deployed
through the deterministic-deployment proxy. It depends only on the contract
kind, the constructor arguments and the salt, so it can be computed before
anything exists on chain and is stable across runs and processes.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Protocol, Sequence

from web3 import Web3

# Arachnid deterministic-deployment proxy, present on most EVM chains and
# pre-deployed by hardhat/anvil dev nodes.
DETERMINISTIC_DEPLOYER = "0x4e59b44847b379578588920ca78fbf26c0b4956c"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1


class ArtifactKind(str, Enum):
    CONTRACT = "contract"


class InitCodeSource(Protocol):
    """Supplies the creation code CREATE2 hashes for a contract and its args."""

    def init_code(self, contract: str, args: Sequence[Any]) -> bytes:
        ...


def normalize_value(value: Any) -> Any:
    """Convert an argument into a JSON-compatible, order-stable value."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    return value


def canonical_json(value: Any) -> str:
    """Canonical JSON serialization for deterministic hashing."""
    return json.dumps(normalize_value(value), sort_keys=True, separators=(",", ":"))


class CanonicalInitCode:
    """
    Bytecode-free init code: the canonical JSON of (kind, contract, args).

    Used when no compiled artifacts are available; identities are still
    deterministic and collision-resistant across distinct (contract, args).
    """

    def __init__(self, kind: ArtifactKind = ArtifactKind.CONTRACT):
        self.kind = kind

    def init_code(self, contract: str, args: Sequence[Any]) -> bytes:
        payload = {"kind": self.kind.value, "contract": contract, "args": list(args)}
        return canonical_json(payload).encode("utf-8")


def derive_salt(label: str) -> bytes:
    """
    Hash a human-chosen label into a 32-byte salt.

    A 0x-prefixed hex label (e.g. an account address) is hashed as raw bytes,
    anything else as UTF-8 text.
    """
    if label.startswith("0x") and len(label) > 2:
        try:
            raw = bytes.fromhex(label[2:])
        except ValueError:
            return bytes(Web3.keccak(text=label))
        return bytes(Web3.keccak(raw))
    return bytes(Web3.keccak(text=label))


def compute_create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    """address = keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]"""
    if len(salt) != 32:
        raise ValueError("salt must be 32 bytes")
    if len(init_code_hash) != 32:
        raise ValueError("init_code_hash must be 32 bytes")
    deployer_bytes = bytes.fromhex(deployer[2:] if deployer.startswith("0x") else deployer)
    digest = Web3.keccak(b"\xff" + deployer_bytes + salt + init_code_hash)
    return Web3.to_checksum_address("0x" + bytes(digest)[12:].hex())


class IdentityDeriver:
    """Computes artifact identities; pure and side-effect free."""

    def __init__(
        self,
        *,
        factory: str = DETERMINISTIC_DEPLOYER,
        source: InitCodeSource | None = None,
    ):
        self.factory = factory
        self.source = source or CanonicalInitCode()

    def init_code_hash(self, contract: str, constructor_args: Sequence[Any]) -> bytes:
        return bytes(Web3.keccak(self.source.init_code(contract, constructor_args)))

    def derive(self, contract: str, constructor_args: Sequence[Any], salt: bytes) -> str:
        return compute_create2_address(
            self.factory,
            salt,
            self.init_code_hash(contract, constructor_args),
        )
