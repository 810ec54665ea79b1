"""Read-only CLI commands over the artifact store and journal."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, TypeVar

from rich.console import Console
from rich.table import Table

from ..config import DeployConfig
from ..errors import DeployError
from ..journal import STEP_COMPLETED, STEP_FAILED, STEP_SKIPPED, DeploymentJournal
from ..ledger import EnvironmentSource, StaticEnvironment
from ..store import ArtifactStore
from ..web3_ledger import Web3Ledger, connect

_EVENT_STYLE = {
    STEP_COMPLETED: "green",
    STEP_SKIPPED: "dim",
    STEP_FAILED: "bold red",
}

T = TypeVar("T")


def environment_source(
    config: DeployConfig,
    network_name: str,
    environment: str | None,
) -> tuple[EnvironmentSource, Web3Ledger | None]:
    """
    Pick where the environment id comes from.

    Precedence: explicit --environment, then the network's pinned chain_id,
    then the node itself (which needs a connection, returned as the ledger).
    """
    network = config.network(network_name)
    if environment:
        return StaticEnvironment(environment), None
    if network.chain_id:
        return StaticEnvironment(network.chain_id), None
    ledger, _ = connect(config, network_name, signing=False)
    return ledger, ledger


async def closing(awaitable: Awaitable[T], ledger: Web3Ledger | None) -> T:
    """Await a ledger-backed operation, then release the ledger's connection."""
    try:
        return await awaitable
    finally:
        if ledger is not None:
            await ledger.close()


def resolve_environment_id(config: DeployConfig, network_name: str, environment: str | None) -> str:
    source, ledger = environment_source(config, network_name, environment)
    return asyncio.run(closing(source.current_environment_id(), ledger))


def run_status(
    config: DeployConfig,
    network_name: str,
    *,
    environment: str | None = None,
    output_json: bool = False,
) -> int:
    console = Console()
    err = Console(stderr=True)
    try:
        environment_id = resolve_environment_id(config, network_name, environment)
    except DeployError as e:
        err.print(str(e), style="bold red", markup=False)
        return 1

    store = ArtifactStore(config.state_dir, environment_id)
    if output_json:
        print(json.dumps({"environment_id": environment_id, "artifacts": store.snapshot()}, indent=2, sort_keys=True))
        return 0

    if not store.names():
        console.print(f"No artifacts recorded for environment {environment_id}", style="yellow")
        return 0

    table = Table(title=f"Artifacts on {environment_id}")
    table.add_column("name", style="cyan", no_wrap=True)
    table.add_column("identity", style="magenta", no_wrap=True)
    table.add_column("deployed")
    table.add_column("initialized")

    for record in sorted(store.records(), key=lambda r: r.name):
        table.add_row(
            record.name,
            record.identity,
            "yes" if record.deployed else "no",
            ", ".join(sorted(record.initialized)),
        )
    console.print(table)
    return 0


def run_show(
    config: DeployConfig,
    network_name: str,
    name: str,
    *,
    environment: str | None = None,
) -> int:
    err = Console(stderr=True)
    try:
        environment_id = resolve_environment_id(config, network_name, environment)
    except DeployError as e:
        err.print(str(e), style="bold red", markup=False)
        return 1

    store = ArtifactStore(config.state_dir, environment_id)
    record = store.get(name)
    if record is None:
        err.print(f"Artifact not found: {name}", style="bold red", markup=False)
        return 1

    journal = DeploymentJournal(config.state_dir, environment_id)
    data: dict[str, Any] = {
        "name": record.name,
        **record.to_dict(),
        "history": [e.to_dict() for e in journal.query(artifact=name)],
    }
    print(json.dumps(data, indent=2, sort_keys=True))
    return 0


def run_history(
    config: DeployConfig,
    network_name: str,
    *,
    environment: str | None = None,
    last_n: int | None = None,
    run_id: str | None = None,
) -> int:
    console = Console()
    err = Console(stderr=True)
    try:
        environment_id = resolve_environment_id(config, network_name, environment)
    except DeployError as e:
        err.print(str(e), style="bold red", markup=False)
        return 1

    journal = DeploymentJournal(config.state_dir, environment_id)
    events = journal.query(run_id=run_id, last=last_n)
    if not events:
        console.print("No journal events", style="yellow")
        return 0

    for event in events:
        style = _EVENT_STYLE.get(event.event_type, "")
        detail = event.payload.get("error") or event.payload.get("reason") or event.payload.get("tx_hash") or ""
        line = f"{event.timestamp.isoformat()} {event.run_id[-6:]} {event.event_type:<15} {event.step} {detail}"
        console.print(line.rstrip(), style=style or None, markup=False, highlight=False)
    return 0
