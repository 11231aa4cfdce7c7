"""Tests for the hash-chained audit logger."""

from __future__ import annotations

import json

import pytest

from medpath.core.config import AuditConfig
from medpath.core.types import AuditEvent
from medpath.governance.audit import AuditLogger


@pytest.fixture
def audit(tmp_path) -> AuditLogger:
    return AuditLogger(config=AuditConfig(log_dir=str(tmp_path)))


def _event(action: str = "node_removed", actor: str = "admin", **details) -> AuditEvent:
    return AuditEvent(actor=actor, action=action, resource="node:1", details=details)


class TestAuditLogger:
    def test_log_appends_line(self, audit):
        audit.log(_event())
        audit.log(_event())
        lines = audit.log_path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["previous_hash"] == json.loads(lines[0])["entry_hash"]

    def test_chain_verifies(self, audit):
        for i in range(5):
            audit.log(_event(step=i))
        assert audit.verify_chain()

    def test_empty_log_verifies(self, audit):
        assert audit.verify_chain()
        assert audit.query() == []

    def test_tampering_detected(self, audit):
        audit.log(_event(beds=3))
        audit.log(_event(beds=2))
        lines = audit.log_path.read_text().splitlines()
        entry = json.loads(lines[0])
        entry["event"]["details"]["beds"] = 30
        lines[0] = json.dumps(entry)
        audit.log_path.write_text("\n".join(lines) + "\n")
        assert not audit.verify_chain()

    def test_deleted_line_detected(self, audit):
        for i in range(3):
            audit.log(_event(step=i))
        lines = audit.log_path.read_text().splitlines()
        audit.log_path.write_text(lines[0] + "\n" + lines[2] + "\n")
        assert not audit.verify_chain()

    def test_query_filters(self, audit):
        audit.log(_event(action="referral_submitted", actor="alice"))
        audit.log(_event(action="referral_approved", actor="dr-lee"))
        audit.log(_event(action="referral_submitted", actor="bob"))
        assert len(audit.query(action="referral_submitted")) == 2
        assert [e.actor for e in audit.query(actor="dr-lee")] == ["dr-lee"]
        assert audit.query(actor="alice", action="referral_approved") == []

    def test_reopen_continues_chain(self, tmp_path):
        config = AuditConfig(log_dir=str(tmp_path))
        first = AuditLogger(config=config)
        first.log(_event())
        second = AuditLogger(config=config)
        assert second.last_hash == first.last_hash
        second.log(_event())
        assert second.verify_chain()
