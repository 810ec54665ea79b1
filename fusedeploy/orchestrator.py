"""
Top-level deployment orchestration.

Orchestrates: resolve context → base plan → routed extension plan → report

Key invariants:
- The environment id and named accounts are read once per invocation
- The base plan always runs first; an extension runs after it, in the same
  context, and may only reference base artifacts by name
- A failure aborts the run with the store reflecting every completed step
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from .identity import IdentityDeriver
from .journal import DeploymentJournal, new_run_id
from .ledger import AccountResolver, EnvironmentSource, LedgerClient
from .plan import DeploymentPlan, EnvironmentContext
from .provisioner import Provisioner
from .router import EnvironmentRouter
from .sequencer import DEPLOYED, CONFIGURED, InitializationSequencer, StepOutcome
from .store import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Result of Orchestrator.run()."""

    run_id: str
    environment_id: str
    identities: dict[str, str]
    outcomes: list[StepOutcome] = field(default_factory=list)
    extension: str | None = None

    @property
    def ledger_interactions(self) -> int:
        return sum(1 for o in self.outcomes if o.status in (DEPLOYED, CONFIGURED))

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "environment_id": self.environment_id,
            "extension": self.extension,
            "identities": dict(sorted(self.identities.items())),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


async def resolve_context(
    environment_source: EnvironmentSource,
    account_resolver: AccountResolver,
    required_roles: Iterable[str] = (),
) -> EnvironmentContext:
    """
    Read the environment id and named accounts once.

    Raises:
        EnvironmentMismatch: if a required role has no account
    """
    environment_id = str(await environment_source.current_environment_id())
    ctx = EnvironmentContext(environment_id=environment_id, accounts=dict(account_resolver.named_accounts()))
    ctx.require(required_roles)
    return ctx


class Orchestrator:
    def __init__(
        self,
        ledger: LedgerClient,
        state_dir: Path,
        *,
        deriver: IdentityDeriver | None = None,
        router: EnvironmentRouter | None = None,
        adopt_existing: bool = False,
    ):
        self.ledger = ledger
        self.state_dir = state_dir
        self.deriver = deriver or IdentityDeriver()
        self.router = router or EnvironmentRouter()
        self.adopt_existing = adopt_existing

    def open_store(self, ctx: EnvironmentContext) -> ArtifactStore:
        return ArtifactStore(self.state_dir, ctx.environment_id)

    def open_journal(self, ctx: EnvironmentContext) -> DeploymentJournal:
        return DeploymentJournal(self.state_dir, ctx.environment_id)

    def sequencer(self, ctx: EnvironmentContext, *, run_id: str | None = None) -> InitializationSequencer:
        provisioner = Provisioner(self.ledger, self.deriver, adopt_existing=self.adopt_existing)
        return InitializationSequencer(
            provisioner,
            self.ledger,
            journal=self.open_journal(ctx),
            run_id=run_id,
        )

    async def run(
        self,
        ctx: EnvironmentContext,
        base: DeploymentPlan,
        extensions: Mapping[str, DeploymentPlan] | None = None,
    ) -> RunReport:
        """Run the base plan, then the extension routed for ctx.environment_id."""
        extension = self.router.route(ctx, extensions or {})
        if extension is not None:
            extension.validate(available=base.artifacts())
        ctx.require(base.roles() | (extension.roles() if extension else set()))

        run_id = new_run_id()
        store = self.open_store(ctx)
        sequencer = self.sequencer(ctx, run_id=run_id)

        logger.info("Run %s on environment %s", run_id, ctx.environment_id)
        outcomes = await sequencer.run(base, ctx, store)
        if extension is not None:
            outcomes += await sequencer.run(extension, ctx, store)

        report = RunReport(
            run_id=run_id,
            environment_id=ctx.environment_id,
            identities=store.identities(),
            outcomes=outcomes,
            extension=extension.name if extension else None,
        )
        logger.info(
            "Run %s complete: %d steps, %d ledger interactions",
            run_id,
            len(outcomes),
            report.ledger_interactions,
        )
        return report

    async def deploy_protocol(
        self,
        environment_source: EnvironmentSource,
        account_resolver: AccountResolver,
        *,
        salt_label: str,
    ) -> RunReport:
        """Resolve the context and run the Fuse protocol plans for it."""
        from .plans import REQUIRED_ROLES, build_plans

        ctx = await resolve_context(environment_source, account_resolver, REQUIRED_ROLES)
        base, extensions = build_plans(ctx, salt_label)
        return await self.run(ctx, base, extensions)
