"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import pytest

from fusedeploy.errors import AlreadySatisfied, LedgerRejection
from fusedeploy.identity import IdentityDeriver
from fusedeploy.ledger import CallReceipt, DeployReceipt
from fusedeploy.plan import EnvironmentContext
from fusedeploy.store import ArtifactStore

DEPLOYER = "0x1111111111111111111111111111111111111111"
ALICE = "0x2222222222222222222222222222222222222222"
BOB = "0x3333333333333333333333333333333333333333"

ACCOUNTS = {"deployer": DEPLOYER, "alice": ALICE, "bob": BOB}


class RecordingLedger:
    """
    In-memory ledger that records every interaction.

    Deploys land at the address the deriver predicts, so the provisioner's
    identity check passes. Failures are switched on per contract name or
    per (contract, operation) and can be cleared between runs.
    """

    def __init__(self, deriver: IdentityDeriver | None = None):
        self._deriver = deriver or IdentityDeriver()
        self.deploys: list[tuple[str, list[Any], str]] = []
        self.calls: list[tuple[str, str, list[Any], str]] = []
        self.code: set[str] = set()
        self.fail_deploy: set[str] = set()
        self.fail_call: set[tuple[str, str]] = set()
        self.already_satisfied: set[tuple[str, str]] = set()

    def deriver(self) -> IdentityDeriver:
        return self._deriver

    @property
    def interactions(self) -> int:
        return len(self.deploys) + len(self.calls)

    def _tx_hash(self) -> str:
        return f"0x{self.interactions:064x}"

    async def deploy(self, contract: str, args: Sequence[Any], deployer: str, salt: bytes) -> DeployReceipt:
        if contract in self.fail_deploy:
            raise LedgerRejection(f"deploy {contract}: execution reverted")
        address = self._deriver.derive(contract, args, salt)
        self.deploys.append((contract, list(args), deployer))
        self.code.add(address.lower())
        return DeployReceipt(address=address, tx_hash=self._tx_hash(), block_number=len(self.deploys))

    async def call(
        self,
        identity: str,
        operation: str,
        args: Sequence[Any],
        caller: str,
        *,
        contract: str,
    ) -> CallReceipt:
        if (contract, operation) in self.fail_call:
            raise LedgerRejection(f"{contract}.{operation}: execution reverted")
        if (contract, operation) in self.already_satisfied:
            raise AlreadySatisfied(f"{contract}.{operation}: contract is already initialized")
        self.calls.append((contract, operation, list(args), caller))
        return CallReceipt(tx_hash=self._tx_hash())

    async def has_code(self, identity: str) -> bool:
        return identity.lower() in self.code

    def deployed_contracts(self) -> list[str]:
        return [contract for contract, _, _ in self.deploys]


@pytest.fixture
def ledger() -> RecordingLedger:
    return RecordingLedger()


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / ".fusedeploy"


@pytest.fixture
def ctx() -> EnvironmentContext:
    return EnvironmentContext(environment_id="1337", accounts=dict(ACCOUNTS))


@pytest.fixture
def store(state_dir: Path, ctx: EnvironmentContext) -> ArtifactStore:
    return ArtifactStore(state_dir, ctx.environment_id)
