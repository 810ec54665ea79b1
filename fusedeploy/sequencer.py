"""
Plan interpreter.

Runs a DeploymentPlan strictly in declaration order, awaiting each ledger
interaction before starting the next step. Any failure aborts the run;
nothing is rolled back and nothing is retried. Because every step checks
the store before acting, re-running the same plan resumes at the first
unsatisfied step.

Each step leaves a trail in the DeploymentJournal:
    started → completed | failed
    skipped (no started event; the step did no work)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .errors import (
    AlreadySatisfied,
    ConfigurationFailure,
    LedgerRejection,
    PlanError,
)
from .journal import (
    STEP_COMPLETED,
    STEP_FAILED,
    STEP_SKIPPED,
    STEP_STARTED,
    DeploymentJournal,
    create_event,
    new_run_id,
)
from .ledger import LedgerClient
from .plan import (
    ConfigureStep,
    DeploymentPlan,
    EnvironmentContext,
    ProvisionStep,
    Step,
    resolve_args,
)
from .provisioner import Provisioner
from .store import ArtifactStore

logger = logging.getLogger(__name__)

# Step outcome statuses
DEPLOYED = "deployed"
CONFIGURED = "configured"
SKIPPED = "skipped"
PENDING = "pending"


@dataclass
class StepOutcome:
    """What a single step did during a run."""

    step: str
    artifact: str
    status: str
    identity: str | None = None
    tx_hash: str | None = None
    duration_ms: float | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "step": self.step,
            "artifact": self.artifact,
            "status": self.status,
        }
        if self.identity is not None:
            result["identity"] = self.identity
        if self.tx_hash is not None:
            result["tx_hash"] = self.tx_hash
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        if self.reason is not None:
            result["reason"] = self.reason
        return result


class InitializationSequencer:
    def __init__(
        self,
        provisioner: Provisioner,
        ledger: LedgerClient,
        *,
        journal: DeploymentJournal | None = None,
        run_id: str | None = None,
    ):
        self.provisioner = provisioner
        self.ledger = ledger
        self.journal = journal
        self.run_id = run_id or new_run_id()

    async def run(
        self,
        plan: DeploymentPlan,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> list[StepOutcome]:
        logger.info("Running plan %s (%d steps) on environment %s", plan.name, len(plan), ctx.environment_id)
        outcomes: list[StepOutcome] = []
        for step in plan:
            if isinstance(step, ProvisionStep):
                outcome = await self._provision(step, ctx, store)
            else:
                outcome = await self._configure(step, ctx, store)
            outcomes.append(outcome)
        return outcomes

    def preview(
        self,
        plan: DeploymentPlan,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> list[StepOutcome]:
        """
        Report which steps a run would skip, without any ledger interaction.

        Steps that depend on artifacts not yet deployed are reported as pending.
        """
        outcomes: list[StepOutcome] = []
        for step in plan:
            if isinstance(step, ProvisionStep):
                try:
                    identity = self.provisioner.identity_for(step.descriptor, ctx, store)
                    done = self.provisioner.is_satisfied(step.descriptor, ctx, store)
                except PlanError as exc:
                    outcomes.append(StepOutcome(step.label, step.artifact, PENDING, reason=str(exc)))
                    continue
                status = SKIPPED if done else PENDING
                outcomes.append(StepOutcome(step.label, step.artifact, status, identity=identity))
            else:
                record = store.get(step.target)
                done = record is not None and record.deployed and step.is_satisfied(store)
                outcomes.append(
                    StepOutcome(
                        step.label,
                        step.artifact,
                        SKIPPED if done else PENDING,
                        identity=record.identity if record else None,
                    )
                )
        return outcomes

    # -------------------------------------------------------------------------
    # Step handlers
    # -------------------------------------------------------------------------

    async def _provision(
        self,
        step: ProvisionStep,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> StepOutcome:
        if self.provisioner.is_satisfied(step.descriptor, ctx, store):
            record = store.get(step.artifact)
            if record is None:
                raise PlanError(f"{step.label}: guard satisfied but {step.artifact!r} is not in the store")
            logger.info("skip %s: already deployed at %s", step.label, record.identity)
            return self._skipped(step, record.identity, "already deployed")

        async def _do() -> StepOutcome:
            record = await self.provisioner.provision(step.descriptor, ctx, store)
            return StepOutcome(step.label, step.artifact, DEPLOYED, identity=record.identity, tx_hash=record.tx_hash)

        return await self._run_step(step, _do)

    async def _configure(
        self,
        step: ConfigureStep,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> StepOutcome:
        record = store.get(step.target)
        if record is None or not record.deployed:
            raise PlanError(f"{step.label}: target {step.target!r} has not been provisioned")

        if step.is_satisfied(store):
            logger.info("skip %s: already satisfied", step.label)
            return self._skipped(step, record.identity, "guard satisfied")

        flag = step.effective_flag

        async def _do() -> StepOutcome:
            args = resolve_args(step.args, store, ctx)
            caller = ctx.account(step.caller)
            logger.info("Calling %s.%s on %s", step.target, step.action, record.identity)
            try:
                receipt = await self.ledger.call(
                    record.identity,
                    step.action,
                    args,
                    caller,
                    contract=record.contract or step.target,
                )
            except AlreadySatisfied as exc:
                logger.info("skip %s: ledger reports already satisfied (%s)", step.label, exc)
                self._mark(store, step.target, flag)
                return StepOutcome(step.label, step.artifact, SKIPPED, identity=record.identity, reason=str(exc))
            except LedgerRejection as exc:
                raise ConfigurationFailure(step.target, step.action, str(exc)) from exc

            self._mark(store, step.target, flag)
            return StepOutcome(
                step.label,
                step.artifact,
                CONFIGURED,
                identity=record.identity,
                tx_hash=receipt.tx_hash,
            )

        return await self._run_step(step, _do)

    # -------------------------------------------------------------------------
    # Private helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _mark(store: ArtifactStore, target: str, flag: str) -> None:
        record = store.get(target)
        if record is None:
            raise PlanError(f"{target!r} vanished from the store during configuration")
        record.initialized.add(flag)
        store.put(target, record)

    def _skipped(self, step: Step, identity: str | None, reason: str) -> StepOutcome:
        self._emit(STEP_SKIPPED, step, {"reason": reason, "identity": identity})
        return StepOutcome(step.label, step.artifact, SKIPPED, identity=identity, reason=reason)

    async def _run_step(self, step: Step, fn: Callable[[], Awaitable[StepOutcome]]) -> StepOutcome:
        """Run one step with started/completed/failed journal events."""
        self._emit(STEP_STARTED, step, {})
        start_time = time.monotonic()
        try:
            outcome = await fn()
        except Exception as e:
            duration = (time.monotonic() - start_time) * 1000
            logger.error("%s failed: %s", step.label, e)
            self._emit(
                STEP_FAILED,
                step,
                {"duration_ms": duration, "error_type": type(e).__name__, "error": str(e)},
            )
            raise

        outcome.duration_ms = (time.monotonic() - start_time) * 1000
        payload: dict[str, Any] = {"status": outcome.status, "duration_ms": outcome.duration_ms}
        if outcome.identity:
            payload["identity"] = outcome.identity
        if outcome.tx_hash:
            payload["tx_hash"] = outcome.tx_hash
        event_type = STEP_SKIPPED if outcome.status == SKIPPED else STEP_COMPLETED
        self._emit(event_type, step, payload)
        return outcome

    def _emit(self, event_type: str, step: Step, payload: dict[str, Any]) -> None:
        if self.journal is None:
            return
        self.journal.append(
            create_event(
                event_type,
                self.run_id,
                step.label,
                step.artifact,
                payload={k: v for k, v in payload.items() if v is not None},
            )
        )
