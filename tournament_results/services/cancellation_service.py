"""
Cancellation cascade run when a tournament starts.

Unsettled registrations (not CONFIRMED / PAID / CANCELLED) are cancelled unless
any of their payments is PAID, then every live team holding a cancelled
registration is cancelled too. Re-running finds nothing to do.
"""
from __future__ import annotations

import logging
import sqlite3

from tournament_results.audit import AuditLoggerFactory, AuditSink, sqlite_audit_factory
from tournament_results.errors import NotFound
from tournament_results.models import PaymentStatus, RegistrationStatus, TeamStatus
from tournament_results.persistence.db import transaction
from tournament_results.persistence.repositories import (
    PaymentRepository,
    RegistrationRepository,
    TeamRepository,
    TournamentRepository,
)
from tournament_results.schemas import CancellationResult

logger = logging.getLogger(__name__)

REGISTRATION_CANCELLED_ACTION = "REGISTRATION_STATUS_CHANGED"
TEAM_CANCELLED_ACTION = "TEAM_STATUS_CHANGED"


class CancellationService:
    """Cancels unconfirmed registrations and the teams that depend on them."""

    def __init__(
        self,
        audit_factory: AuditLoggerFactory = sqlite_audit_factory,
        tournament_repo: TournamentRepository | None = None,
        registration_repo: RegistrationRepository | None = None,
        payment_repo: PaymentRepository | None = None,
        team_repo: TeamRepository | None = None,
    ) -> None:
        self._audit_factory = audit_factory
        self._tournament_repo = tournament_repo or TournamentRepository()
        self._registration_repo = registration_repo or RegistrationRepository()
        self._payment_repo = payment_repo or PaymentRepository()
        self._team_repo = team_repo or TeamRepository()

    def _is_protected(self, conn: sqlite3.Connection, registration_id: str) -> bool:
        """Any PAID payment protects the registration from automatic cancellation."""
        return any(
            p.payment_status == PaymentStatus.PAID
            for p in self._payment_repo.list_by_registration(conn, registration_id)
        )

    def cancel_unconfirmed_registrations(
        self, conn: sqlite3.Connection, tournament_id: str, actor_id: str
    ) -> CancellationResult:
        """
        Run the cascade for one tournament in a single transaction (joins the
        caller's transaction when one is open). Audit failures are counted,
        never raised.
        """
        result = CancellationResult()
        with transaction(conn):
            if self._tournament_repo.get(conn, tournament_id) is None:
                raise NotFound("Tournament", tournament_id)
            sink = AuditSink(self._audit_factory(conn))

            cancelled_ids: list[str] = []
            for reg in self._registration_repo.list_unsettled(conn, tournament_id):
                if self._is_protected(conn, reg.id):
                    result.protected_registrations += 1
                    logger.info("Registration %s kept: has a PAID payment", reg.id)
                    continue
                self._registration_repo.update_status(conn, reg.id, RegistrationStatus.CANCELLED)
                cancelled_ids.append(reg.id)
                sink.record(
                    actor_id,
                    REGISTRATION_CANCELLED_ACTION,
                    reg.id,
                    f"Registration cancelled automatically at tournament start ({reg.registration_status} -> CANCELLED)",
                    {"registration_status": reg.registration_status},
                    {"registration_status": RegistrationStatus.CANCELLED.value},
                )

            teams = self._team_repo.list_active_by_registrations(conn, tournament_id, cancelled_ids)
            for team in teams:
                self._team_repo.update_status(conn, team.id, TeamStatus.CANCELLED)
                sink.record(
                    actor_id,
                    TEAM_CANCELLED_ACTION,
                    team.id,
                    f"Team cancelled: a member registration was cancelled ({team.status} -> CANCELLED)",
                    {"status": team.status},
                    {"status": TeamStatus.CANCELLED.value},
                )

            result.cancelled_registrations = len(cancelled_ids)
            result.cancelled_teams = len(teams)
            result.audit_failures = sink.failures

        if result.cancelled_registrations or result.cancelled_teams:
            logger.info(
                "Tournament %s: cancelled %d registrations, %d teams (%d protected)",
                tournament_id, result.cancelled_registrations, result.cancelled_teams,
                result.protected_registrations,
            )
        if result.audit_failures:
            logger.warning("Tournament %s: %d audit entries dropped", tournament_id, result.audit_failures)
        return result
