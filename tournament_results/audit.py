"""
Audit logging for status changes.

AuditLogger is the port; SqliteAuditLogger writes entries on the caller's
connection (so they commit or roll back with the operation) and
LoggingAuditLogger emits them to the standard logger. AuditSink wraps any
logger and never lets a failure reach the caller.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Callable, Protocol

from tournament_results.errors import LoggingFailure
from tournament_results.persistence.repositories import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditLogger(Protocol):
    def log(
        self,
        actor: str,
        action: str,
        entity_id: str,
        description: str,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
    ) -> None:
        ...


AuditLoggerFactory = Callable[[sqlite3.Connection], AuditLogger]


class SqliteAuditLogger:
    """Writes audit entries into audit_logs using the operation's connection."""

    def __init__(self, conn: sqlite3.Connection, repo: AuditLogRepository | None = None) -> None:
        self._conn = conn
        self._repo = repo or AuditLogRepository()

    def log(self, actor, action, entity_id, description, old_data=None, new_data=None) -> None:
        try:
            self._repo.create(self._conn, actor, action, entity_id, description, old_data, new_data)
        except sqlite3.Error as e:
            raise LoggingFailure(f"audit write failed for {action} {entity_id}: {e}") from e


class LoggingAuditLogger:
    """Emits audit entries as structured log lines on the 'tournament_results.audit' logger."""

    def __init__(self, name: str = "tournament_results.audit") -> None:
        self._log = logging.getLogger(name)

    def log(self, actor, action, entity_id, description, old_data=None, new_data=None) -> None:
        self._log.info(
            "%s %s %s: %s old=%s new=%s",
            actor, action, entity_id, description,
            json.dumps(old_data, default=str), json.dumps(new_data, default=str),
        )


def sqlite_audit_factory(conn: sqlite3.Connection) -> AuditLogger:
    return SqliteAuditLogger(conn)


class AuditSink:
    """
    Best-effort front for an AuditLogger. Failures are logged locally and
    counted in `failures`; they never propagate.
    """

    def __init__(self, audit_logger: AuditLogger) -> None:
        self._audit_logger = audit_logger
        self.failures = 0

    def record(
        self,
        actor: str,
        action: str,
        entity_id: str,
        description: str,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
    ) -> bool:
        try:
            self._audit_logger.log(actor, action, entity_id, description, old_data, new_data)
        except Exception:
            self.failures += 1
            logger.exception("Audit entry dropped: %s %s (%s)", action, entity_id, description)
            return False
        return True
