"""
Fuse protocol deployment plans.

The base plan runs everywhere; extension plans are keyed by environment id
(chain id) and run afterwards, referencing base artifacts by name.
"""

from __future__ import annotations

from ..plan import DeploymentPlan, EnvironmentContext
from .base import BASE_ROLES, build_base_plan, ether
from .local import LOCAL_CHAIN_ID, build_local_plan

REQUIRED_ROLES = BASE_ROLES


def build_plans(
    ctx: EnvironmentContext,
    salt_label: str,
) -> tuple[DeploymentPlan, dict[str, DeploymentPlan]]:
    """Return (base plan, extension plans by environment id) for `ctx`."""
    base = build_base_plan(ctx)
    extensions = {
        LOCAL_CHAIN_ID: build_local_plan(ctx, salt_label, available=base.artifacts()),
    }
    return base, extensions


__all__ = [
    "LOCAL_CHAIN_ID",
    "REQUIRED_ROLES",
    "build_base_plan",
    "build_local_plan",
    "build_plans",
    "ether",
]
