"""
Tournament status state machine.

Automatic (date-driven, run periodically):
  PUBLISHED -> REGISTRATION_OPEN      registration_start <= now <= registration_end
  REGISTRATION_OPEN -> REGISTRATION_CLOSED   now > registration_end
  REGISTRATION_CLOSED -> IN_PROGRESS  now >= tournament_start and at least one team
                                      (runs the cancellation cascade)

Each write is conditional on the current status, so a repeated pass with the
same dates changes nothing. Rules run in order, so a tournament may advance
more than one step in a single pass.

Administrative changes follow _VALID_TRANSITIONS; COMPLETED -> IN_PROGRESS
reverts the tournament's ranking contribution.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from tournament_results.audit import AuditLoggerFactory, AuditSink, sqlite_audit_factory
from tournament_results.config import get_settings
from tournament_results.errors import InvalidState, InvalidTransition, NotFound, TournamentResultsError
from tournament_results.models import MatchStatus, Tournament, TournamentStatus
from tournament_results.persistence.db import transaction
from tournament_results.persistence.repositories import MatchRepository, TeamRepository, TournamentRepository
from tournament_results.schemas import (
    StatusChangeResult,
    StatusChangeSuggestion,
    StatusUpdateError,
    StatusUpdateResult,
)
from tournament_results.services.cancellation_service import CancellationService
from tournament_results.services.locking import TournamentLocks, tournament_locks
from tournament_results.services.results_service import ResultsService

logger = logging.getLogger(__name__)

STATUS_CHANGED_ACTION = "TOURNAMENT_STATUS_CHANGED"


# ---------- Automatic rules ----------


@dataclass(frozen=True)
class _AutomaticRule:
    from_status: TournamentStatus
    to_status: TournamentStatus
    reason: str
    is_due: Callable[[Tournament, datetime], bool]
    requires_teams: bool = False


_AUTOMATIC_RULES: tuple[_AutomaticRule, ...] = (
    _AutomaticRule(
        TournamentStatus.PUBLISHED,
        TournamentStatus.REGISTRATION_OPEN,
        "Registration start date reached",
        lambda t, now: t.registration_start <= now <= t.registration_end,
    ),
    _AutomaticRule(
        TournamentStatus.REGISTRATION_OPEN,
        TournamentStatus.REGISTRATION_CLOSED,
        "Registration end date reached",
        lambda t, now: now > t.registration_end,
    ),
    _AutomaticRule(
        TournamentStatus.REGISTRATION_CLOSED,
        TournamentStatus.IN_PROGRESS,
        "Tournament start date reached",
        lambda t, now: now >= t.tournament_start,
        requires_teams=True,
    ),
)

NO_TEAMS_REASON = "No teams registered"


# ---------- Administrative transitions ----------

_VALID_TRANSITIONS: dict[TournamentStatus, set[TournamentStatus]] = {
    TournamentStatus.DRAFT: {TournamentStatus.PUBLISHED, TournamentStatus.CANCELLED},
    TournamentStatus.PUBLISHED: {
        TournamentStatus.DRAFT, TournamentStatus.REGISTRATION_OPEN, TournamentStatus.CANCELLED,
    },
    TournamentStatus.REGISTRATION_OPEN: {
        TournamentStatus.PUBLISHED, TournamentStatus.REGISTRATION_CLOSED, TournamentStatus.CANCELLED,
    },
    TournamentStatus.REGISTRATION_CLOSED: {
        TournamentStatus.REGISTRATION_OPEN, TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED,
    },
    TournamentStatus.IN_PROGRESS: {
        TournamentStatus.REGISTRATION_CLOSED, TournamentStatus.COMPLETED, TournamentStatus.CANCELLED,
    },
    TournamentStatus.COMPLETED: {TournamentStatus.IN_PROGRESS},  # correction only; reverts rankings
    TournamentStatus.CANCELLED: {TournamentStatus.DRAFT, TournamentStatus.PUBLISHED},
}


def _utc(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


class StatusService:
    """Date-driven status engine plus validated administrative status changes."""

    def __init__(
        self,
        audit_factory: AuditLoggerFactory = sqlite_audit_factory,
        cancellation_service: CancellationService | None = None,
        results_service: ResultsService | None = None,
        locks: TournamentLocks = tournament_locks,
        system_actor: str | None = None,
        tournament_repo: TournamentRepository | None = None,
        team_repo: TeamRepository | None = None,
        match_repo: MatchRepository | None = None,
    ) -> None:
        self._audit_factory = audit_factory
        self._cancellation_service = cancellation_service or CancellationService(audit_factory=audit_factory)
        self._results_service = results_service or ResultsService(locks=locks)
        self._locks = locks
        self._system_actor = system_actor or get_settings().system_actor
        self._tournament_repo = tournament_repo or TournamentRepository()
        self._team_repo = team_repo or TeamRepository()
        self._match_repo = match_repo or MatchRepository()

    # ---------- Automatic pass ----------

    def _apply_rule(
        self,
        conn: sqlite3.Connection,
        rule: _AutomaticRule,
        tournament: Tournament,
        now: datetime,
        result: StatusUpdateResult,
    ) -> None:
        with transaction(conn):
            if rule.requires_teams and self._team_repo.count_by_tournament(conn, tournament.id) == 0:
                logger.debug("Tournament %s not started: no teams", tournament.id)
                return
            changed = self._tournament_repo.update_status_if(
                conn, tournament.id, rule.from_status, rule.to_status, now
            )
            if not changed:
                return
            cancelled = None
            if rule.to_status == TournamentStatus.IN_PROGRESS:
                cancelled = self._cancellation_service.cancel_unconfirmed_registrations(
                    conn, tournament.id, self._system_actor
                )
            AuditSink(self._audit_factory(conn)).record(
                self._system_actor,
                STATUS_CHANGED_ACTION,
                tournament.id,
                f"Automatic status change: {rule.reason}",
                {"status": rule.from_status.value},
                {"status": rule.to_status.value},
            )
        result.updated_count += 1
        if cancelled is not None:
            result.cancelled_registrations += cancelled.cancelled_registrations
            result.cancelled_teams += cancelled.cancelled_teams
        logger.info(
            "Tournament %s: %s -> %s (%s)", tournament.id, rule.from_status.value, rule.to_status.value, rule.reason
        )

    def update_tournament_statuses_automatically(
        self, conn: sqlite3.Connection, now: datetime | None = None
    ) -> StatusUpdateResult:
        """
        One pass of the automatic rules. Each tournament is its own transaction;
        a failure is recorded in `errors` and the pass continues.
        """
        now = _utc(now)
        result = StatusUpdateResult(ran_at=now)
        for rule in _AUTOMATIC_RULES:
            try:
                candidate_ids = self._tournament_repo.list_ids_by_status(conn, rule.from_status)
            except sqlite3.Error as e:
                logger.error("Could not list %s tournaments: %s", rule.from_status.value, e)
                result.errors.append(StatusUpdateError(tournament_id="*", message=str(e)))
                continue
            for tournament_id in candidate_ids:
                try:
                    # A row that fails to load or parse is reported like any other failure.
                    tournament = self._tournament_repo.get(conn, tournament_id)
                    if tournament is None or not rule.is_due(tournament, now):
                        continue
                    self._apply_rule(conn, rule, tournament, now, result)
                except (TournamentResultsError, sqlite3.Error, ValueError) as e:
                    logger.error("Status update failed for tournament %s: %s", tournament_id, e)
                    result.errors.append(StatusUpdateError(tournament_id=tournament_id, message=str(e)))
        logger.info(
            "Automatic status pass at %s: %d updated, %d errors", now.isoformat(), result.updated_count, result.error_count
        )
        return result

    # ---------- Preview ----------

    def tournaments_needing_status_update(
        self, conn: sqlite3.Connection, now: datetime | None = None
    ) -> list[StatusChangeSuggestion]:
        """Read-only: tournaments whose dates call for an automatic change, with the reason."""
        now = _utc(now)
        suggestions: list[StatusChangeSuggestion] = []
        for rule in _AUTOMATIC_RULES:
            for tournament in self._tournament_repo.list_by_status(conn, rule.from_status):
                if not rule.is_due(tournament, now):
                    continue
                suggested, reason = rule.to_status, rule.reason
                if rule.requires_teams and self._team_repo.count_by_tournament(conn, tournament.id) == 0:
                    suggested, reason = rule.from_status, NO_TEAMS_REASON
                suggestions.append(StatusChangeSuggestion(
                    tournament_id=tournament.id,
                    name=tournament.name,
                    current_status=rule.from_status.value,
                    suggested_status=suggested.value,
                    reason=reason,
                ))
        return suggestions

    def check_tournament_status(
        self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None
    ) -> StatusChangeSuggestion | None:
        if self._tournament_repo.get(conn, tournament_id) is None:
            raise NotFound("Tournament", tournament_id)
        for suggestion in self.tournaments_needing_status_update(conn, now):
            if suggestion.tournament_id == tournament_id:
                return suggestion
        return None

    # ---------- Administrative change ----------

    def _check_guards(
        self,
        conn: sqlite3.Connection,
        tournament: Tournament,
        current: TournamentStatus,
        new: TournamentStatus,
        now: datetime,
    ) -> None:
        if new == TournamentStatus.REGISTRATION_OPEN:
            if tournament.registration_start > now:
                raise InvalidTransition(current.value, new.value, reason="registration has not started yet")
            if tournament.registration_end < now:
                raise InvalidTransition(current.value, new.value, reason="registration period has ended")
        elif new == TournamentStatus.IN_PROGRESS and current != TournamentStatus.COMPLETED:
            if tournament.tournament_start > now:
                raise InvalidTransition(current.value, new.value, reason="tournament start date not reached")
            if self._team_repo.count_by_tournament(conn, tournament.id) == 0:
                raise InvalidTransition(current.value, new.value, reason="no teams registered")
        elif current == TournamentStatus.IN_PROGRESS and new == TournamentStatus.REGISTRATION_CLOSED:
            if self._match_repo.count_by_status(conn, tournament.id, MatchStatus.COMPLETED) > 0:
                raise InvalidTransition(current.value, new.value, reason="matches have already been played")

    def change_tournament_status(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        new_status: str,
        actor_id: str,
        now: datetime | None = None,
        process_results: bool = False,
    ) -> StatusChangeResult:
        """
        Validate and apply an administrative status change with its side effects,
        all in one transaction. With process_results=True, a change to COMPLETED
        also runs the results pipeline.
        """
        now = _utc(now)
        try:
            new = TournamentStatus(new_status)
        except ValueError:
            raise InvalidState(f"Unknown tournament status: {new_status}") from None

        with self._locks.hold(tournament_id), transaction(conn):
            tournament = self._tournament_repo.get(conn, tournament_id)
            if tournament is None:
                raise NotFound("Tournament", tournament_id)
            current = TournamentStatus(tournament.status)
            allowed = _VALID_TRANSITIONS[current]
            if new not in allowed:
                raise InvalidTransition(current.value, new.value, sorted(s.value for s in allowed))
            self._check_guards(conn, tournament, current, new, now)

            if not self._tournament_repo.update_status_if(conn, tournament_id, current, new, now):
                raise InvalidState(f"Tournament {tournament_id} changed status concurrently")
            change = StatusChangeResult(tournament_id=tournament_id, old_status=current.value, new_status=new.value)

            if current == TournamentStatus.REGISTRATION_CLOSED and new == TournamentStatus.IN_PROGRESS:
                change.cancellation = self._cancellation_service.cancel_unconfirmed_registrations(
                    conn, tournament_id, actor_id
                )
            elif current == TournamentStatus.COMPLETED and new == TournamentStatus.IN_PROGRESS:
                change.reversion = self._results_service.revert_tournament_results(conn, tournament_id, now=now)
            elif new == TournamentStatus.COMPLETED:
                if tournament.tournament_end is None:
                    self._tournament_repo.update_tournament_end(conn, tournament_id, now)
                if process_results:
                    change.results = self._results_service.process_completed_tournament(conn, tournament_id, now=now)

            AuditSink(self._audit_factory(conn)).record(
                actor_id,
                STATUS_CHANGED_ACTION,
                tournament_id,
                f"Status changed from {current.value} to {new.value}",
                {"status": current.value},
                {"status": new.value},
            )
        logger.info("Tournament %s: %s -> %s by %s", tournament_id, current.value, new.value, actor_id)
        return change
