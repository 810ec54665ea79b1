"""
Append-only deployment journal.

Each line of the journal is one JournalEvent describing a step outcome.
The journal is an audit trail only: idempotence decisions are made from
the ArtifactStore, never by replaying these events.

Layout:

    <state_dir>/journal/<environment_id>.jsonl
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

STEP_STARTED = "step.started"
STEP_COMPLETED = "step.completed"
STEP_SKIPPED = "step.skipped"
STEP_FAILED = "step.failed"

EVENT_TYPES = frozenset({
    STEP_STARTED,
    STEP_COMPLETED,
    STEP_SKIPPED,
    STEP_FAILED,
})

MAX_ERROR_CHARS = 500

_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def new_run_id() -> str:
    """ULID-style run id: 48-bit ms timestamp + 80 random bits, Crockford base32."""
    value = (int(time.time() * 1000) << 80) | int.from_bytes(os.urandom(10), "big")
    chars = []
    for _ in range(26):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


@dataclass(frozen=True)
class JournalEvent:
    """Immutable record of one step outcome."""

    event_type: str
    run_id: str
    step: str  # e.g. "provision:Comptroller", "configure:FuseFeeDistributor.initialize"
    artifact: str
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Invalid event_type: {self.event_type}")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "event_type": self.event_type,
            "run_id": self.run_id,
            "step": self.step,
            "artifact": self.artifact,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.payload:
            result["payload"] = self.payload
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalEvent:
        return cls(
            event_type=data["event_type"],
            run_id=data["run_id"],
            step=data["step"],
            artifact=data["artifact"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            payload=data.get("payload", {}),
        )

    @classmethod
    def from_json(cls, line: str) -> JournalEvent:
        return cls.from_dict(json.loads(line))


def create_event(
    event_type: str,
    run_id: str,
    step: str,
    artifact: str,
    *,
    payload: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> JournalEvent:
    """Factory with consistent timestamps and error truncation."""
    payload = dict(payload or {})
    error = payload.get("error")
    if isinstance(error, str) and len(error) > MAX_ERROR_CHARS:
        payload["error"] = error[:MAX_ERROR_CHARS]
    return JournalEvent(
        event_type=event_type,
        run_id=run_id,
        step=step,
        artifact=artifact,
        timestamp=timestamp or datetime.now(timezone.utc),
        payload=payload,
    )


class DeploymentJournal:
    """
    JSON Lines journal for one environment.

    INVARIANT: existing lines are never rewritten; append() is the only write.
    """

    def __init__(self, state_dir: Path, environment_id: str):
        self.environment_id = environment_id
        self.path = state_dir / "journal" / f"{environment_id}.jsonl"

    def append(self, event: JournalEvent) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(event.to_json() + "\n")

    def iter_events(self) -> Iterator[JournalEvent]:
        if not self.path.exists():
            return

        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield JournalEvent.from_json(line)

    def query(
        self,
        *,
        run_id: str | None = None,
        event_type: str | None = None,
        artifact: str | None = None,
        last: int | None = None,
    ) -> list[JournalEvent]:
        """Filter events in append order; `last` keeps only the final N matches."""
        events = [
            e
            for e in self.iter_events()
            if (run_id is None or e.run_id == run_id)
            and (event_type is None or e.event_type == event_type)
            and (artifact is None or e.artifact == artifact)
        ]
        if last is not None:
            return events[-last:] if last > 0 else []
        return events

    def runs(self) -> list[str]:
        """Distinct run ids in first-seen order."""
        seen: dict[str, None] = {}
        for event in self.iter_events():
            seen.setdefault(event.run_id, None)
        return list(seen)
