"""
Ledger collaborator protocols.

The orchestration core never talks to a chain directly. It deploys and
calls through a LedgerClient, reads the environment id from an
EnvironmentSource and the named accounts from an AccountResolver.
fusedeploy.web3_ledger provides the web3.py implementation; tests use an
in-memory double.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class DeployReceipt:
    """Confirmation of a deploy transaction."""

    address: str
    tx_hash: str | None = None
    block_number: int | None = None


@dataclass(frozen=True)
class CallReceipt:
    """Confirmation of a state-changing method call."""

    tx_hash: str | None = None
    block_number: int | None = None


@runtime_checkable
class LedgerClient(Protocol):
    """
    Deploy and call capabilities of the target ledger.

    Both operations await confirmation before returning. Rejected, reverted
    or timed-out transactions raise LedgerRejection; a call whose effect is
    already in place may raise AlreadySatisfied instead.
    """

    async def deploy(
        self,
        contract: str,
        args: Sequence[Any],
        deployer: str,
        salt: bytes,
    ) -> DeployReceipt:
        ...

    async def call(
        self,
        identity: str,
        operation: str,
        args: Sequence[Any],
        caller: str,
        *,
        contract: str,
    ) -> CallReceipt:
        ...

    async def has_code(self, identity: str) -> bool:
        ...


class EnvironmentSource(Protocol):
    async def current_environment_id(self) -> str:
        ...


class AccountResolver(Protocol):
    def named_accounts(self) -> Mapping[str, str]:
        ...


class StaticEnvironment:
    """Environment id known up front (pinned in config or given on the command line)."""

    def __init__(self, environment_id: str):
        self.environment_id = environment_id

    async def current_environment_id(self) -> str:
        return self.environment_id


class StaticAccounts:
    """Fixed role → address mapping."""

    def __init__(self, accounts: Mapping[str, str]):
        self.accounts = dict(accounts)

    def named_accounts(self) -> Mapping[str, str]:
        return dict(self.accounts)
