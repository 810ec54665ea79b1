"""
Tests for the CLI commands.

Read-only commands run over a pre-populated state directory, so no node is
needed; the environment id comes from the network's pinned chain_id or
--environment. Deploy runs against an in-memory ledger patched in for the
node connection.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from fusedeploy.cli import cli
from fusedeploy.commands.deploy_cmd import run_deploy, run_plan
from fusedeploy.commands.state_cmd import run_history, run_show, run_status
from fusedeploy.config import DeployConfig, load_config
from fusedeploy.journal import STEP_COMPLETED, STEP_STARTED, DeploymentJournal, create_event
from fusedeploy.ledger import StaticAccounts
from fusedeploy.store import ArtifactRecord, ArtifactStore

from conftest import ACCOUNTS, RecordingLedger

COMPTROLLER = "0xAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAa"

CONFIG = """
[deploy]
salt = "fuse-local"

[networks.localhost]
rpc_url = "http://127.0.0.1:8545"
chain_id = 1337

[networks.localhost.accounts]
deployer = "0x1111111111111111111111111111111111111111"
alice = "0x2222222222222222222222222222222222222222"
bob = "0x3333333333333333333333333333333333333333"
"""


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Config file plus a state directory holding one deployed Comptroller."""
    monkeypatch.setenv("COLUMNS", "200")
    path = tmp_path / "fusedeploy.toml"
    path.write_text(CONFIG, encoding="utf-8")

    state_dir = tmp_path / ".fusedeploy"
    ArtifactStore(state_dir, "1337").put(
        "Comptroller",
        ArtifactRecord(name="Comptroller", identity=COMPTROLLER, contract="Comptroller", deployed=True, tx_hash="0x01"),
    )
    journal = DeploymentJournal(state_dir, "1337")
    journal.append(create_event(STEP_STARTED, "RUN1", "provision:Comptroller", "Comptroller"))
    journal.append(
        create_event(STEP_COMPLETED, "RUN1", "provision:Comptroller", "Comptroller", payload={"tx_hash": "0x01"})
    )
    return path


@pytest.fixture
def config(config_path: Path) -> DeployConfig:
    return load_config(config_path)


def test_status_json_output(config: DeployConfig, capsys) -> None:
    """Test status with --json uses the pinned chain id."""
    result = run_status(config, "localhost", output_json=True)

    assert result == 0
    data = json.loads(capsys.readouterr().out)
    assert data["environment_id"] == "1337"
    assert data["artifacts"]["Comptroller"]["identity"] == COMPTROLLER


def test_status_table(config: DeployConfig, capsys) -> None:
    """Test status renders one row per artifact."""
    result = run_status(config, "localhost")

    assert result == 0
    output = capsys.readouterr().out
    assert "Comptroller" in output
    assert COMPTROLLER in output


def test_status_empty_environment(config: DeployConfig, capsys) -> None:
    """Test status for an environment with no store."""
    result = run_status(config, "localhost", environment="1")

    assert result == 0
    assert "No artifacts recorded" in capsys.readouterr().out


def test_status_unknown_network(config: DeployConfig, capsys) -> None:
    """Test status with a network missing from config."""
    result = run_status(config, "mainnet")

    assert result == 1
    assert "Unknown network" in capsys.readouterr().err


def test_show_success(config: DeployConfig, capsys) -> None:
    """Test show prints the record and its journal history."""
    result = run_show(config, "localhost", "Comptroller", environment="1337")

    assert result == 0
    data = json.loads(capsys.readouterr().out)
    assert data["name"] == "Comptroller"
    assert data["deployed"] is True
    assert [e["event_type"] for e in data["history"]] == [STEP_STARTED, STEP_COMPLETED]


def test_show_not_found(config: DeployConfig, capsys) -> None:
    """Test show for an artifact that was never provisioned."""
    result = run_show(config, "localhost", "FusePoolLens")

    assert result == 1
    assert "Artifact not found" in capsys.readouterr().err


def test_history_with_limit(config: DeployConfig, capsys) -> None:
    """Test history keeps only the last N events."""
    result = run_history(config, "localhost", last_n=1)

    assert result == 0
    output = capsys.readouterr().out
    assert STEP_COMPLETED in output
    assert STEP_STARTED not in output


def test_history_unknown_run(config: DeployConfig, capsys) -> None:
    """Test history filtered to a run id with no events."""
    result = run_history(config, "localhost", run_id="NOPE")

    assert result == 0
    assert "No journal events" in capsys.readouterr().out


def test_plan_without_artifacts(config: DeployConfig, capsys) -> None:
    """Test plan reports missing compiled artifacts instead of crashing."""
    result = run_plan(config, "localhost", environment="1337")

    assert result == 1
    assert "No compiled artifact" in capsys.readouterr().err



class NodeLedger(RecordingLedger):
    """RecordingLedger that also reports a chain id and tracks whether it was closed."""

    def __init__(self):
        super().__init__()
        self.closed = False

    async def current_environment_id(self) -> str:
        return "1337"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fresh_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> DeployConfig:
    """Config whose state directory is still empty."""
    monkeypatch.setenv("COLUMNS", "200")
    path = tmp_path / "fresh" / "fusedeploy.toml"
    path.parent.mkdir()
    path.write_text(CONFIG, encoding="utf-8")
    return load_config(path)


@pytest.fixture
def node(monkeypatch: pytest.MonkeyPatch) -> NodeLedger:
    ledger = NodeLedger()
    monkeypatch.setattr(
        "fusedeploy.commands.deploy_cmd.connect",
        lambda config, network_name: (ledger, StaticAccounts(ACCOUNTS)),
    )
    return ledger


def test_deploy_json_report(fresh_config: DeployConfig, node: NodeLedger, capsys) -> None:
    """Test deploy runs the Fuse plans and prints the run report."""
    result = run_deploy(fresh_config, "localhost", output_json=True)

    assert result == 0
    data = json.loads(capsys.readouterr().out)
    assert data["environment_id"] == "1337"
    assert data["extension"] == "fuse-local"
    store = ArtifactStore(fresh_config.state_dir, "1337")
    assert data["identities"]["FusePoolDirectory"] == store.get("FusePoolDirectory").identity
    assert node.closed


def test_deploy_second_run_skips_everything(fresh_config: DeployConfig, node: NodeLedger, capsys) -> None:
    """Test a repeated deploy makes no ledger interactions."""
    run_deploy(fresh_config, "localhost", output_json=True)
    interactions = node.interactions
    capsys.readouterr()

    result = run_deploy(fresh_config, "localhost")

    assert result == 0
    assert node.interactions == interactions
    assert "0 ledger interaction(s)" in capsys.readouterr().out


def test_deploy_step_failure(fresh_config: DeployConfig, node: NodeLedger, capsys) -> None:
    """Test a failed configuration step names the artifact and action and suggests a re-run."""
    node.fail_call.add(("FuseFeeDistributor", "_setPoolLimits"))

    result = run_deploy(fresh_config, "localhost")

    assert result == 1
    err = capsys.readouterr().err
    assert "Deployment aborted at FuseFeeDistributor: _setPoolLimits failed:" in err
    assert "re-run" in err
    assert node.closed


def test_cli_status_wiring(config_path: Path) -> None:
    """Test the click group passes --config through to the command."""
    result = CliRunner().invoke(cli, ["-c", str(config_path), "status", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["environment_id"] == "1337"


def test_cli_missing_config(tmp_path: Path) -> None:
    """Test a missing config file is a clean usage error."""
    result = CliRunner().invoke(cli, ["-c", str(tmp_path / "absent.toml"), "status"])

    assert result.exit_code == 1
    assert "Config file not found" in result.output
