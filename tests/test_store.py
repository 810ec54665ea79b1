"""Tests for the persisted artifact store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fusedeploy.errors import ConfigError, IdentityCollision
from fusedeploy.store import ArtifactRecord, ArtifactStore

IDENTITY_A = "0xAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAa"
IDENTITY_B = "0xbBbBBBBbbBBBbbbBbbBbbbbBBbBbbbbBbBbbBBbB"


def _record(name: str, identity: str, **kwargs) -> ArtifactRecord:
    return ArtifactRecord(name=name, identity=identity, contract=name, deployed=True, **kwargs)


class TestArtifactStore:
    def test_get_missing_returns_none(self, store: ArtifactStore):
        assert store.get("Comptroller") is None
        assert not store.exists("Comptroller")

    def test_put_then_get(self, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))

        record = store.get("Comptroller")
        assert record is not None
        assert record.identity == IDENTITY_A
        assert record.deployed
        assert record.initialized == set()

    def test_put_persists_immediately(self, state_dir: Path, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A, initialized={"b", "a"}))

        data = json.loads((state_dir / "deployments" / "1337.json").read_text())
        assert data["environment_id"] == "1337"
        assert data["artifacts"]["Comptroller"]["identity"] == IDENTITY_A
        assert data["artifacts"]["Comptroller"]["initialized"] == ["a", "b"]
        assert not (state_dir / "deployments" / "1337.tmp").exists()

    def test_survives_reload(self, state_dir: Path, store: ArtifactStore):
        store.put("FuseFeeDistributor", _record("FuseFeeDistributor", IDENTITY_A, initialized={"fee"}, tx_hash="0x01"))

        reloaded = ArtifactStore(state_dir, "1337")
        record = reloaded.get("FuseFeeDistributor")
        assert record is not None
        assert record.initialized == {"fee"}
        assert record.tx_hash == "0x01"
        assert reloaded.snapshot() == store.snapshot()

    def test_environments_are_isolated(self, state_dir: Path, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))
        assert ArtifactStore(state_dir, "1").get("Comptroller") is None

    def test_get_returns_copy(self, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))

        record = store.get("Comptroller")
        assert record is not None
        record.initialized.add("tampered")
        assert store.get("Comptroller").initialized == set()

    def test_put_overwrites_same_name(self, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))
        store.put("Comptroller", _record("Comptroller", IDENTITY_A, initialized={"x"}))
        assert store.get("Comptroller").initialized == {"x"}
        assert store.names() == ["Comptroller"]

    def test_identity_collision_rejected(self, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))

        with pytest.raises(IdentityCollision) as exc_info:
            store.put("Unitroller", _record("Unitroller", IDENTITY_A.lower()))

        assert exc_info.value.existing_name == "Comptroller"
        assert exc_info.value.new_name == "Unitroller"
        assert not store.exists("Unitroller")

    def test_find_by_identity_case_insensitive(self, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))
        assert store.find_by_identity(IDENTITY_A.lower()) == "Comptroller"
        assert store.find_by_identity(IDENTITY_B) is None

    def test_identities(self, store: ArtifactStore):
        store.put("Comptroller", _record("Comptroller", IDENTITY_A))
        store.put("CEtherDelegate", _record("CEtherDelegate", IDENTITY_B))
        assert store.identities() == {"Comptroller": IDENTITY_A, "CEtherDelegate": IDENTITY_B}

    def test_truncated_document_is_config_error(self, state_dir: Path):
        path = state_dir / "deployments" / "1337.json"
        path.parent.mkdir(parents=True)
        path.write_text('{"environment_id": "1337", "artifacts": {', encoding="utf-8")

        with pytest.raises(ConfigError, match="1337.json"):
            ArtifactStore(state_dir, "1337")


def test_record_from_dict_defaults():
    record = ArtifactRecord.from_dict("MockPriceOracle", {"identity": IDENTITY_A})
    assert record.contract == "MockPriceOracle"
    assert record.deployed is False
    assert record.initialized == set()
    assert record.args == []
