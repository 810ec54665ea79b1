"""
Fuse protocol base plan: runs on every environment.

Core Compound contracts, interest-rate models, Fuse directory/fee/lens
contracts and the oracle stack, in dependency order. All artifacts are
deployed by the `deployer` role with a salt derived from its address.
"""

from __future__ import annotations

from web3 import Web3

from ..identity import MAX_UINT256, ZERO_ADDRESS, derive_salt
from ..plan import (
    ArtifactDescriptor,
    ArtifactRef,
    ConfigureStep,
    DeploymentPlan,
    EnvironmentContext,
    ProvisionStep,
    RoleRef,
)

BASE_ROLES = ("deployer", "alice", "bob")


def ether(amount: str | int) -> int:
    """Decimal ether amount → wei."""
    return int(Web3.to_wei(amount, "ether"))


def build_base_plan(ctx: EnvironmentContext) -> DeploymentPlan:
    salt = derive_salt(ctx.account("deployer"))

    def provision(name: str, *args: object) -> ProvisionStep:
        return ProvisionStep(ArtifactDescriptor(name=name, salt=salt, constructor_args=args))

    steps = [
        # Compound core
        provision("Comptroller"),
        provision("CErc20Delegate"),
        provision("CEtherDelegate"),
        provision("RewardsDistributorDelegate"),
        # Interest rate models
        provision(
            "JumpRateModel",
            20_000_000_000_000_000,  # baseRatePerYear
            180_000_000_000_000_000,  # multiplierPerYear
            4_000_000_000_000_000_000,  # jumpMultiplierPerYear
            800_000_000_000_000_000,  # kink
        ),
        provision(
            "WhitePaperInterestRateModel",
            20_000_000_000_000_000,  # baseRatePerYear
            100_000_000_000_000_000,  # multiplierPerYear
        ),
        # Fuse core
        provision("FusePoolDirectory"),
        ConfigureStep(
            "FusePoolDirectory",
            "initialize",
            (True, [RoleRef("deployer"), RoleRef("alice"), RoleRef("bob")]),
        ),
        provision("FuseSafeLiquidator"),
        provision("FuseFeeDistributor"),
        ConfigureStep("FuseFeeDistributor", "initialize", (ether("0.1"),), flag="fee"),
        ConfigureStep(
            "FuseFeeDistributor",
            "_setPoolLimits",
            (ether(1), MAX_UINT256, MAX_UINT256),
            flag="pool-limits",
        ),
        ConfigureStep(
            "FuseFeeDistributor",
            "_editComptrollerImplementationWhitelist",
            ([ZERO_ADDRESS], [ArtifactRef("Comptroller")], [True]),
            flag="comptroller-whitelist",
        ),
        provision("FusePoolLens"),
        ConfigureStep("FusePoolLens", "initialize", (ArtifactRef("FusePoolDirectory"),)),
        provision("FusePoolLensSecondary"),
        ConfigureStep("FusePoolLensSecondary", "initialize", (ArtifactRef("FusePoolDirectory"),)),
        ConfigureStep(
            "FuseFeeDistributor",
            "_editCEtherDelegateWhitelist",
            ([ZERO_ADDRESS], [ArtifactRef("CEtherDelegate")], [False], [True]),
            flag="cether-delegate-whitelist",
        ),
        ConfigureStep(
            "FuseFeeDistributor",
            "_editCErc20DelegateWhitelist",
            ([ZERO_ADDRESS], [ArtifactRef("CErc20Delegate")], [False], [True]),
            flag="cerc20-delegate-whitelist",
        ),
        provision("InitializableClones"),
        # Oracles
        provision("MasterPriceOracle"),
        provision("ChainlinkPriceOracle", 10),
        provision("UniswapTwapPriceOracleV2Root"),
        provision("UniswapTwapPriceOracleV2"),
        provision(
            "UniswapTwapPriceOracleV2Factory",
            ArtifactRef("UniswapTwapPriceOracleV2Root"),
            ArtifactRef("UniswapTwapPriceOracleV2"),
        ),
    ]
    return DeploymentPlan("fuse-base", steps)
