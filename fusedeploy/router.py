"""Environment-specific extension plan selection."""

from __future__ import annotations

import logging
from typing import Mapping

from .plan import DeploymentPlan, EnvironmentContext

logger = logging.getLogger(__name__)


class EnvironmentRouter:
    def route(
        self,
        ctx: EnvironmentContext,
        plans: Mapping[str, DeploymentPlan],
    ) -> DeploymentPlan | None:
        """Return the extension plan for ctx.environment_id, or None if it has none."""
        plan = plans.get(ctx.environment_id)
        if plan is None:
            logger.info("No extension plan for environment %s", ctx.environment_id)
        else:
            logger.info("Environment %s routes to %s", ctx.environment_id, plan.name)
        return plan
