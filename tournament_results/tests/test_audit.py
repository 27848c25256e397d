"""
Tests for audit loggers and the best-effort sink.
"""
from __future__ import annotations

import logging

import pytest

from tournament_results.audit import AuditSink, LoggingAuditLogger, SqliteAuditLogger
from tournament_results.errors import LoggingFailure
from tournament_results.persistence.repositories import AuditLogRepository


def test_sqlite_logger_writes_entry(db_conn):
    SqliteAuditLogger(db_conn).log("admin-1", "TOURNAMENT_STATUS_CHANGED", "t1", "manual", {"status": "DRAFT"}, None)
    entries = AuditLogRepository().list_by_entity(db_conn, "t1")
    assert len(entries) == 1
    assert entries[0]["old_data"] == {"status": "DRAFT"}
    assert entries[0]["new_data"] is None


def test_sqlite_logger_wraps_store_errors(db_conn):
    db_conn.execute("DROP TABLE audit_logs")
    with pytest.raises(LoggingFailure):
        SqliteAuditLogger(db_conn).log("admin-1", "X", "t1", "manual")


def test_logging_logger_emits_record(caplog):
    with caplog.at_level(logging.INFO, logger="tournament_results.audit"):
        LoggingAuditLogger().log("system", "TEAM_STATUS_CHANGED", "team-9", "cancelled", None, {"status": "CANCELLED"})
    assert "TEAM_STATUS_CHANGED team-9" in caplog.text
    assert '"CANCELLED"' in caplog.text


def test_sink_counts_failures(db_conn):
    db_conn.execute("DROP TABLE audit_logs")
    sink = AuditSink(SqliteAuditLogger(db_conn))
    assert sink.record("system", "X", "t1", "first") is False
    assert sink.record("system", "X", "t2", "second") is False
    assert sink.failures == 2


def test_sink_passes_through_success(db_conn):
    sink = AuditSink(SqliteAuditLogger(db_conn))
    assert sink.record("system", "X", "t1", "ok") is True
    assert sink.failures == 0
