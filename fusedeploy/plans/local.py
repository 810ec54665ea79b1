"""
Local development extension (chain id 1337).

Seeds two test tokens, funds alice and bob, deploys a mock oracle and
points the MasterPriceOracle from the base plan at it.
"""

from __future__ import annotations

from typing import Iterable

from ..identity import ZERO_ADDRESS, derive_salt
from ..plan import (
    ArtifactDescriptor,
    ArtifactRef,
    ConfigureStep,
    DeploymentPlan,
    EnvironmentContext,
    ProvisionStep,
    RoleRef,
    Step,
)
from .base import ether

LOCAL_CHAIN_ID = "1337"

TOKEN_SUPPLY = {
    "TRIBEToken": ether(1_250_000_000),
    "TOUCHToken": ether(2_250_000_000),
}
FAUCET_AMOUNT = ether(100_000)


def _seed_token(name: str, supply: int, salt: bytes, recipients: Iterable[str]) -> list[Step]:
    steps: list[Step] = [
        ProvisionStep(ArtifactDescriptor(name=name, salt=salt, constructor_args=(supply, RoleRef("deployer")))),
    ]
    for role in recipients:
        steps.append(
            ConfigureStep(name, "transfer", (RoleRef(role), FAUCET_AMOUNT), flag=f"transfer:{role}")
        )
    return steps


def build_local_plan(
    ctx: EnvironmentContext,
    salt_label: str,
    *,
    available: Iterable[str] = (),
) -> DeploymentPlan:
    salt = derive_salt(salt_label)

    steps: list[Step] = []
    for token, supply in TOKEN_SUPPLY.items():
        steps.extend(_seed_token(token, supply, salt, ("alice", "bob")))

    steps.append(
        ProvisionStep(ArtifactDescriptor(name="MockPriceOracle", salt=salt, constructor_args=(100,), deployer="bob"))
    )

    mock = ArtifactRef("MockPriceOracle")
    underlyings = [ArtifactRef(token) for token in TOKEN_SUPPLY]
    steps.append(
        ConfigureStep(
            "MasterPriceOracle",
            "initialize",
            (underlyings, [mock] * len(underlyings), mock, RoleRef("deployer"), True, ZERO_ADDRESS),
        )
    )
    return DeploymentPlan("fuse-local", steps, available=available)
