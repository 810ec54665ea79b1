"""Deploy and plan-preview CLI commands."""

from __future__ import annotations

import asyncio
import json

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..config import DeployConfig
from ..errors import DeployError, StepFailure
from ..orchestrator import Orchestrator, resolve_context
from ..plans import REQUIRED_ROLES, build_plans
from ..provisioner import Provisioner
from ..router import EnvironmentRouter
from ..secrets import resolve_signing_keys
from ..sequencer import DEPLOYED, CONFIGURED, SKIPPED, InitializationSequencer, StepOutcome
from ..store import ArtifactStore
from ..web3_ledger import NetworkAccounts, connect
from .state_cmd import closing, environment_source

_STATUS_STYLE = {
    DEPLOYED: "green",
    CONFIGURED: "green",
    SKIPPED: "dim",
}


def _outcome_table(title: str, outcomes: list[StepOutcome]) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("step", style="cyan")
    table.add_column("status")
    table.add_column("identity", style="magenta", no_wrap=True)
    table.add_column("tx", style="dim")

    for index, outcome in enumerate(outcomes, start=1):
        style = _STATUS_STYLE.get(outcome.status, "yellow")
        table.add_row(
            str(index),
            Text(outcome.step),
            f"[{style}]{outcome.status}[/{style}]",
            outcome.identity or "",
            (outcome.tx_hash[:12] + "…") if outcome.tx_hash else "",
        )
    return table


def run_deploy(
    config: DeployConfig,
    network_name: str,
    *,
    adopt_existing: bool = False,
    output_json: bool = False,
) -> int:
    console = Console()
    err = Console(stderr=True)

    try:
        ledger, accounts = connect(config, network_name)
        orchestrator = Orchestrator(
            ledger,
            config.state_dir,
            deriver=ledger.deriver(),
            adopt_existing=adopt_existing,
        )
        report = asyncio.run(closing(orchestrator.deploy_protocol(ledger, accounts, salt_label=config.salt), ledger))
    except StepFailure as e:
        err.print(f"Deployment aborted at {e}", style="bold red", markup=False)
        err.print("Fix the cause and re-run; completed steps will be skipped.", style="dim")
        return 1
    except DeployError as e:
        err.print(str(e), style="bold red", markup=False)
        return 1

    if output_json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
        return 0

    console.print(_outcome_table(f"Run {report.run_id} on {report.environment_id}", report.outcomes))
    if report.extension:
        console.print(f"extension: {report.extension}", style="dim")
    console.print(f"{report.ledger_interactions} ledger interaction(s)", style="green")
    return 0


def run_plan(config: DeployConfig, network_name: str, *, environment: str | None = None) -> int:
    console = Console()
    err = Console(stderr=True)

    try:
        network = config.network(network_name)
        source, ledger = environment_source(config, network_name, environment)
        # Keys are resolved only to learn their addresses; nothing is signed.
        accounts = NetworkAccounts(network, resolve_signing_keys(network.keys))
        ctx = asyncio.run(closing(resolve_context(source, accounts, REQUIRED_ROLES), ledger))

        base, extensions = build_plans(ctx, config.salt)
        extension = EnvironmentRouter().route(ctx, extensions)

        store = ArtifactStore(config.state_dir, ctx.environment_id)
        deriver = ledger.deriver() if ledger is not None else _artifact_deriver(config)
        sequencer = InitializationSequencer(Provisioner(ledger, deriver), ledger)  # type: ignore[arg-type]

        outcomes = sequencer.preview(base, ctx, store)
        if extension is not None:
            outcomes += sequencer.preview(extension, ctx, store)
    except DeployError as e:
        err.print(str(e), style="bold red", markup=False)
        return 1

    console.print(_outcome_table(f"Plan for {ctx.environment_id}", outcomes))
    pending = sum(1 for o in outcomes if o.status != SKIPPED)
    console.print(f"{pending} step(s) pending, {len(outcomes) - pending} satisfied", style="dim")
    return 0


def _artifact_deriver(config: DeployConfig):
    from ..identity import IdentityDeriver
    from ..web3_ledger import HardhatArtifacts

    return IdentityDeriver(source=HardhatArtifacts(config.artifacts_dir))
