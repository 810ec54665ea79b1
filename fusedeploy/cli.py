"""CLI entrypoint for fusedeploy."""

import logging
import sys
from pathlib import Path

import click
from rich.logging import RichHandler

from . import __version__
from .config import DEFAULT_CONFIG_NAME


def _load(ctx: click.Context):
    """Load the config lazily so --help works without a config file."""
    from .config import load_config
    from .errors import ConfigError

    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


_network_option = click.option(
    "--network",
    "-n",
    default="localhost",
    show_default=True,
    help="Network name from the [networks] table",
)

_environment_option = click.option(
    "--environment",
    "-e",
    default=None,
    metavar="CHAIN_ID",
    help="Environment id to read (skips asking the node)",
)


@click.group()
@click.version_option(__version__, prog_name="fusedeploy")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Path to config file (defaults to ./{DEFAULT_CONFIG_NAME})",
)
@click.option("--verbose", is_flag=True, help="Log every ledger interaction")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """fusedeploy - Idempotent deployment of the Fuse lending protocol.

    Derives every contract address up front, deploys only what is missing,
    and applies each one-time initialization exactly once.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = (config_path or Path.cwd() / DEFAULT_CONFIG_NAME).resolve()

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # web3's own debug output drowns ours
    logging.getLogger("web3").setLevel(logging.WARNING)


@cli.command()
@_network_option
@click.option(
    "--adopt-existing",
    is_flag=True,
    help="Record contracts already on chain at the derived address instead of deploying",
)
@click.option("--json", "output_json", is_flag=True, help="Output the run report as JSON")
@click.pass_context
def deploy(ctx: click.Context, network: str, adopt_existing: bool, output_json: bool) -> None:
    """Deploy the protocol to a network, skipping everything already done.

    Examples:

        fusedeploy deploy

        fusedeploy deploy --network localhost --json
    """
    from .commands.deploy_cmd import run_deploy

    exit_code = run_deploy(_load(ctx), network, adopt_existing=adopt_existing, output_json=output_json)
    sys.exit(exit_code)


@cli.command()
@_network_option
@_environment_option
@click.pass_context
def plan(ctx: click.Context, network: str, environment: str | None) -> None:
    """Show which steps a deploy would run, without sending transactions."""
    from .commands.deploy_cmd import run_plan

    exit_code = run_plan(_load(ctx), network, environment=environment)
    sys.exit(exit_code)


@cli.command()
@_network_option
@_environment_option
@click.option("--json", "output_json", is_flag=True, help="Output the store as JSON")
@click.pass_context
def status(ctx: click.Context, network: str, environment: str | None, output_json: bool) -> None:
    """List recorded artifacts and their applied initialization flags."""
    from .commands.state_cmd import run_status

    exit_code = run_status(_load(ctx), network, environment=environment, output_json=output_json)
    sys.exit(exit_code)


@cli.command()
@click.argument("name")
@_network_option
@_environment_option
@click.pass_context
def show(ctx: click.Context, name: str, network: str, environment: str | None) -> None:
    """Show one artifact record with its journal history.

    Examples:

        fusedeploy show FuseFeeDistributor -e 1337
    """
    from .commands.state_cmd import run_show

    exit_code = run_show(_load(ctx), network, name, environment=environment)
    sys.exit(exit_code)


@cli.command()
@_network_option
@_environment_option
@click.option("--last", "last_n", type=int, default=None, help="Only the last N events")
@click.option("--run", "run_id", default=None, help="Only events from this run")
@click.pass_context
def history(
    ctx: click.Context,
    network: str,
    environment: str | None,
    last_n: int | None,
    run_id: str | None,
) -> None:
    """Print the deployment journal."""
    from .commands.state_cmd import run_history

    exit_code = run_history(_load(ctx), network, environment=environment, last_n=last_n, run_id=run_id)
    sys.exit(exit_code)


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
