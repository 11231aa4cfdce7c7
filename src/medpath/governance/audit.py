"""Append-only audit trail for graph and referral changes.

Entries are written one per line to a JSONL file. Each entry stores the
SHA-256 of the previous entry's hash concatenated with its own event JSON,
so editing or removing any line breaks verification for every later line.
"""

from __future__ import annotations

import hashlib
import json
import threading
from pathlib import Path
from typing import Any

from medpath.core.config import AuditConfig
from medpath.core.types import AuditEvent

_GENESIS_HASH = hashlib.sha256(b"medpath-genesis").hexdigest()


class AuditEntry:
    """An AuditEvent together with its position in the hash chain."""

    def __init__(self, event: AuditEvent, previous_hash: str, entry_hash: str) -> None:
        self.event = event
        self.previous_hash = previous_hash
        self.entry_hash = entry_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_hash": self.previous_hash,
            "entry_hash": self.entry_hash,
            "event": json.loads(self.event.model_dump_json()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        return cls(
            event=AuditEvent(**data["event"]),
            previous_hash=data["previous_hash"],
            entry_hash=data["entry_hash"],
        )


def chain_hash(previous_hash: str, event_json: str) -> str:
    return hashlib.sha256((previous_hash + event_json).encode("utf-8")).hexdigest()


class AuditLogger:
    """Hash-chained JSONL audit logger.

    Args:
        config: AuditConfig instance. Defaults to AuditConfig() which reads
            from environment variables.
        log_file: Name of the JSONL file inside ``config.log_dir``.
    """

    def __init__(
        self,
        config: AuditConfig | None = None,
        log_file: str = "audit.jsonl",
    ) -> None:
        self._config = config or AuditConfig()
        log_dir = Path(self._config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        self._log_path = log_dir / log_file
        self._lock = threading.Lock()
        self._last_hash = _GENESIS_HASH
        for entry in self._read_entries():
            self._last_hash = entry.entry_hash

    def log(self, event: AuditEvent) -> AuditEntry:
        """Append ``event`` to the chain and return the written entry."""
        event_json = event.model_dump_json()
        with self._lock:
            entry = AuditEntry(
                event=event,
                previous_hash=self._last_hash,
                entry_hash=chain_hash(self._last_hash, event_json),
            )
            with open(self._log_path, "a") as fh:
                fh.write(json.dumps(entry.to_dict()) + "\n")
            self._last_hash = entry.entry_hash
        return entry

    def verify_chain(self) -> bool:
        """Recompute every hash in the file; False if any link is broken."""
        previous_hash = _GENESIS_HASH
        for entry in self._read_entries():
            if entry.previous_hash != previous_hash:
                return False
            if entry.entry_hash != chain_hash(previous_hash, entry.event.model_dump_json()):
                return False
            previous_hash = entry.entry_hash
        return True

    def query(
        self,
        actor: str | None = None,
        action: str | None = None,
        resource: str | None = None,
    ) -> list[AuditEvent]:
        """Events matching every given field exactly, oldest first."""
        return [
            e.event for e in self._read_entries()
            if (actor is None or e.event.actor == actor)
            and (action is None or e.event.action == action)
            and (resource is None or e.event.resource == resource)
        ]

    def _read_entries(self) -> list[AuditEntry]:
        if not self._log_path.exists():
            return []
        entries: list[AuditEntry] = []
        with open(self._log_path) as fh:
            for line in fh:
                stripped = line.strip()
                if stripped:
                    entries.append(AuditEntry.from_dict(json.loads(stripped)))
        return entries

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def last_hash(self) -> str:
        return self._last_hash
