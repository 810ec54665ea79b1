"""Tests for deploy-if-absent provisioning."""

from __future__ import annotations

import asyncio

import pytest

from fusedeploy.errors import DeploymentFailure, EnvironmentMismatch, IdentityCollision, PlanError
from fusedeploy.identity import derive_salt
from fusedeploy.ledger import DeployReceipt
from fusedeploy.plan import ArtifactDescriptor, ArtifactRef, EnvironmentContext
from fusedeploy.provisioner import Provisioner
from fusedeploy.store import ArtifactRecord, ArtifactStore

from conftest import DEPLOYER, RecordingLedger

SALT = derive_salt("S")


class MisroutingLedger(RecordingLedger):
    """Reports a deploy address different from the derived identity."""

    async def deploy(self, contract, args, deployer, salt):
        await super().deploy(contract, args, deployer, salt)
        return DeployReceipt(address="0x000000000000000000000000000000000000dEaD")


def _provision(provisioner: Provisioner, descriptor, ctx, store):
    return asyncio.run(provisioner.provision(descriptor, ctx, store))


class TestProvisioner:
    def test_registry_provisioned_once(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger)
        registry = ArtifactDescriptor(name="Registry", salt=SALT)

        first = _provision(provisioner, registry, ctx, store)
        second = _provision(provisioner, registry, ctx, store)

        assert ledger.deployed_contracts() == ["Registry"]
        assert first.identity == second.identity
        assert store.names() == ["Registry"]
        assert store.get("Registry").deployed

    def test_record_contents(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        record = _provision(
            Provisioner(ledger),
            ArtifactDescriptor(name="ChainlinkPriceOracle", salt=SALT, constructor_args=(10,)),
            ctx,
            store,
        )

        assert record.identity == Provisioner(ledger).deriver.derive("ChainlinkPriceOracle", [10], SALT)
        assert record.deployer == DEPLOYER
        assert record.args == [10]
        assert record.tx_hash is not None
        assert record.initialized == set()

    def test_artifact_refs_resolve_to_identities(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger)
        root = _provision(provisioner, ArtifactDescriptor(name="Root", salt=SALT), ctx, store)
        factory = ArtifactDescriptor(name="Factory", salt=SALT, constructor_args=(ArtifactRef("Root"),))

        _provision(provisioner, factory, ctx, store)

        assert ledger.deploys[-1] == ("Factory", [root.identity], DEPLOYER)

    def test_unprovisioned_ref_is_plan_error(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        factory = ArtifactDescriptor(name="Factory", salt=SALT, constructor_args=(ArtifactRef("Root"),))

        with pytest.raises(PlanError, match="Root"):
            _provision(Provisioner(ledger), factory, ctx, store)
        assert ledger.interactions == 0

    def test_ledger_rejection_becomes_deployment_failure(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        ledger.fail_deploy.add("Comptroller")

        with pytest.raises(DeploymentFailure) as exc_info:
            _provision(Provisioner(ledger), ArtifactDescriptor(name="Comptroller", salt=SALT), ctx, store)

        assert exc_info.value.artifact == "Comptroller"
        assert "reverted" in exc_info.value.cause
        assert store.get("Comptroller") is None

    def test_address_mismatch_is_failure(self, ctx, store: ArtifactStore):
        with pytest.raises(DeploymentFailure, match="expected derived identity"):
            _provision(Provisioner(MisroutingLedger()), ArtifactDescriptor(name="Comptroller", salt=SALT), ctx, store)
        assert store.get("Comptroller") is None

    def test_identity_collision(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger)
        _provision(provisioner, ArtifactDescriptor(name="Comptroller", salt=SALT), ctx, store)

        # Same contract, args and salt under a second name derives the same address.
        twin = ArtifactDescriptor(name="ComptrollerTwin", salt=SALT, contract="Comptroller")
        with pytest.raises(IdentityCollision):
            _provision(provisioner, twin, ctx, store)
        assert ledger.deployed_contracts() == ["Comptroller"]

    def test_missing_deployer_role(self, ledger: RecordingLedger, store: ArtifactStore):
        ctx = EnvironmentContext(environment_id="1337", accounts={"deployer": DEPLOYER})
        descriptor = ArtifactDescriptor(name="MockPriceOracle", salt=SALT, deployer="bob")

        with pytest.raises(EnvironmentMismatch, match="bob"):
            _provision(Provisioner(ledger), descriptor, ctx, store)

    def test_changed_args_redeploy(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger)
        first = _provision(provisioner, ArtifactDescriptor(name="Oracle", salt=SALT, constructor_args=(10,)), ctx, store)
        second = _provision(provisioner, ArtifactDescriptor(name="Oracle", salt=SALT, constructor_args=(20,)), ctx, store)

        assert first.identity != second.identity
        assert len(ledger.deploys) == 2
        assert store.get("Oracle").identity == second.identity

    def test_adopt_existing_records_without_deploying(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger, adopt_existing=True)
        descriptor = ArtifactDescriptor(name="Comptroller", salt=SALT)
        ledger.code.add(provisioner.identity_for(descriptor, ctx, store).lower())

        record = _provision(provisioner, descriptor, ctx, store)

        assert ledger.deploys == []
        assert record.deployed
        assert record.tx_hash is None

    def test_existing_code_redeployed_without_adopt(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger)
        descriptor = ArtifactDescriptor(name="Comptroller", salt=SALT)
        ledger.code.add(provisioner.identity_for(descriptor, ctx, store).lower())

        _provision(provisioner, descriptor, ctx, store)

        assert ledger.deployed_contracts() == ["Comptroller"]

    def test_is_satisfied_requires_matching_identity(self, ledger: RecordingLedger, ctx, store: ArtifactStore):
        provisioner = Provisioner(ledger)
        descriptor = ArtifactDescriptor(name="Comptroller", salt=SALT)
        assert not provisioner.is_satisfied(descriptor, ctx, store)

        store.put("Comptroller", ArtifactRecord(name="Comptroller", identity="0x" + "ab" * 20, deployed=True))
        assert not provisioner.is_satisfied(descriptor, ctx, store)

        _provision(provisioner, descriptor, ctx, store)
        assert provisioner.is_satisfied(descriptor, ctx, store)
