"""
Persisted artifact state, one JSON document per target environment.

The document is the source of truth for idempotence decisions: a step is
complete once its record has been written here. Writes go to a temp file
and are renamed into place, so a crash leaves either the old or the new
document, never a torn one.

Layout:

    <state_dir>/deployments/<environment_id>.json

    {
      "environment_id": "1337",
      "artifacts": {
        "Comptroller": {"identity": "0x...", "deployed": true, "initialized": [], ...}
      }
    }
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from .errors import ConfigError, IdentityCollision


@dataclass
class ArtifactRecord:
    """Stored state of one provisioned artifact."""

    name: str
    identity: str
    contract: str = ""
    deployed: bool = False
    tx_hash: str | None = None  # opaque receipt handle
    deployer: str | None = None
    args: list[Any] = field(default_factory=list)
    initialized: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "identity": self.identity,
            "contract": self.contract or self.name,
            "deployed": self.deployed,
            "tx_hash": self.tx_hash,
            "deployer": self.deployer,
            "args": self.args,
            "initialized": sorted(self.initialized),
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> ArtifactRecord:
        """Reconstruct from JSON dict."""
        return cls(
            name=name,
            identity=data["identity"],
            contract=data.get("contract", name),
            deployed=bool(data.get("deployed", False)),
            tx_hash=data.get("tx_hash"),
            deployer=data.get("deployer"),
            args=list(data.get("args", [])),
            initialized=set(data.get("initialized", [])),
        )


class ArtifactStore:
    """
    Name-keyed artifact records for a single environment.

    Records are handed out as copies; the only way to change stored state is
    put(). No locking: one orchestrator run is the only writer.
    """

    def __init__(self, state_dir: Path, environment_id: str):
        self.state_dir = state_dir
        self.environment_id = environment_id
        self.path = state_dir / "deployments" / f"{environment_id}.json"
        self._records: dict[str, ArtifactRecord] = self._load()

    def _load(self) -> dict[str, ArtifactRecord]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid state document {self.path}: {e}") from e
        artifacts = data.get("artifacts", {}) if isinstance(data, dict) else {}
        return {name: ArtifactRecord.from_dict(name, raw) for name, raw in artifacts.items()}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "environment_id": self.environment_id,
            "artifacts": {name: rec.to_dict() for name, rec in sorted(self._records.items())},
        }
        serialized = json.dumps(document, indent=2, sort_keys=True) + "\n"

        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(serialized, encoding="utf-8")
        temp_path.replace(self.path)

    def get(self, name: str) -> ArtifactRecord | None:
        record = self._records.get(name)
        return copy.deepcopy(record) if record is not None else None

    def exists(self, name: str) -> bool:
        return name in self._records

    def put(self, name: str, record: ArtifactRecord) -> None:
        """
        Upsert a record (last write wins) and persist before returning.

        Raises:
            IdentityCollision: if another name already holds the record's identity
        """
        owner = self.find_by_identity(record.identity)
        if owner is not None and owner != name:
            raise IdentityCollision(record.identity, owner, name)

        stored = copy.deepcopy(record)
        stored.name = name
        self._records[name] = stored
        self._flush()

    def find_by_identity(self, identity: str) -> str | None:
        """Return the name holding `identity`, if any (case-insensitive)."""
        wanted = identity.lower()
        for name, record in self._records.items():
            if record.identity.lower() == wanted:
                return name
        return None

    def names(self) -> list[str]:
        return list(self._records.keys())

    def records(self) -> Iterator[ArtifactRecord]:
        for name in self.names():
            record = self.get(name)
            if record is not None:
                yield record

    def identities(self) -> dict[str, str]:
        """Map of artifact name to identity for every stored record."""
        return {name: rec.identity for name, rec in self._records.items()}

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Serializable view of the whole store (for comparison and display)."""
        return {name: rec.to_dict() for name, rec in sorted(self._records.items())}
