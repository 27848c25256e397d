"""
Tests for the status engine: date-driven transitions, idempotence, error
isolation, the preview report and administrative status changes.
"""
from __future__ import annotations

import sqlite3
from datetime import timedelta

import pytest

from tournament_results.config import get_settings
from tournament_results.errors import InvalidState, InvalidTransition, NotFound, TransientStoreError
from tournament_results.models import MatchStatus, PhaseType, RegistrationStatus, TeamStatus, TournamentStatus
from tournament_results.persistence.repositories import (
    AuditLogRepository,
    RegistrationRepository,
    TeamRepository,
    TournamentRepository,
)
from tournament_results.services.cancellation_service import CancellationService
from tournament_results.services.status_service import STATUS_CHANGED_ACTION, StatusService


def _status(conn, tournament_id):
    return TournamentRepository().get(conn, tournament_id).status


@pytest.fixture
def status_service():
    return StatusService()


@pytest.fixture
def upcoming(make_tournament, now):
    """Registration window open around now, play a week later."""
    def _make(status, **kwargs):
        dates = dict(
            registration_start=now - timedelta(days=1),
            registration_end=now + timedelta(days=5),
            tournament_start=now + timedelta(days=7),
            tournament_end=None,
        )
        dates.update(kwargs)
        return make_tournament(status=status, **dates)

    return _make


# ---------- Automatic pass ----------


def test_published_opens_registration(db_conn, status_service, upcoming, now):
    t = upcoming(TournamentStatus.PUBLISHED)
    result = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 1
    assert result.error_count == 0
    assert _status(db_conn, t.id) == TournamentStatus.REGISTRATION_OPEN


def test_published_opens_exactly_at_registration_start(db_conn, status_service, upcoming, now):
    t = upcoming(TournamentStatus.PUBLISHED, registration_start=now)
    status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert _status(db_conn, t.id) == TournamentStatus.REGISTRATION_OPEN


def test_published_before_registration_start_unchanged(db_conn, status_service, upcoming, now):
    t = upcoming(TournamentStatus.PUBLISHED, registration_start=now + timedelta(seconds=1))
    result = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 0
    assert _status(db_conn, t.id) == TournamentStatus.PUBLISHED


def test_registration_closes_only_after_end(db_conn, status_service, upcoming, now):
    at_end = upcoming(TournamentStatus.REGISTRATION_OPEN, registration_end=now)
    past_end = upcoming(TournamentStatus.REGISTRATION_OPEN, registration_end=now - timedelta(seconds=1))
    status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert _status(db_conn, at_end.id) == TournamentStatus.REGISTRATION_OPEN
    assert _status(db_conn, past_end.id) == TournamentStatus.REGISTRATION_CLOSED


def test_closed_without_teams_stays_closed(db_conn, status_service, make_tournament, now):
    t = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None)
    result = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 0
    assert result.error_count == 0
    assert _status(db_conn, t.id) == TournamentStatus.REGISTRATION_CLOSED


def test_start_runs_cancellation_cascade(db_conn, status_service, make_tournament, make_team, now):
    t = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None)
    make_team(t.id, ("a1", "a2"))
    pending_team = make_team(t.id, ("b1", "b2"), registration_status=RegistrationStatus.PENDING)

    result = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 1
    assert result.cancelled_registrations == 2
    assert result.cancelled_teams == 1
    assert _status(db_conn, t.id) == TournamentStatus.IN_PROGRESS
    assert TeamRepository().get(db_conn, pending_team.id).status == TeamStatus.CANCELLED


def test_tournament_can_advance_two_steps_in_one_pass(db_conn, status_service, make_tournament, make_team, now):
    t = make_tournament(status=TournamentStatus.REGISTRATION_OPEN, tournament_end=None)
    make_team(t.id, ("a1", "a2"))
    result = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 2
    assert _status(db_conn, t.id) == TournamentStatus.IN_PROGRESS


def test_second_pass_changes_nothing(db_conn, status_service, upcoming, make_tournament, make_team, now):
    upcoming(TournamentStatus.PUBLISHED)
    started = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None)
    make_team(started.id, ("a1", "a2"), registration_status=RegistrationStatus.PENDING)

    first = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    second = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert first.updated_count == 2
    assert second.updated_count == 0
    assert second.cancelled_registrations == 0
    assert second.cancelled_teams == 0


def test_automatic_change_is_audited_as_system(db_conn, status_service, upcoming, now):
    t = upcoming(TournamentStatus.PUBLISHED)
    status_service.update_tournament_statuses_automatically(db_conn, now=now)
    entries = AuditLogRepository().list_by_entity(db_conn, t.id)
    assert len(entries) == 1
    assert entries[0]["actor_id"] == "system"
    assert entries[0]["action"] == STATUS_CHANGED_ACTION
    assert entries[0]["old_data"] == {"status": "PUBLISHED"}
    assert entries[0]["new_data"] == {"status": "REGISTRATION_OPEN"}


def test_system_actor_from_environment(db_conn, upcoming, now, monkeypatch):
    monkeypatch.setenv("RESULTS_SYSTEM_ACTOR", "scheduler")
    get_settings.cache_clear()
    t = upcoming(TournamentStatus.PUBLISHED)
    StatusService().update_tournament_statuses_automatically(db_conn, now=now)
    assert AuditLogRepository().list_by_entity(db_conn, t.id)[0]["actor_id"] == "scheduler"


class _FailingCancellation(CancellationService):
    def __init__(self, failing_id, error=None):
        super().__init__()
        self._failing_id = failing_id
        self._error = error or TransientStoreError("database is locked")

    def cancel_unconfirmed_registrations(self, conn, tournament_id, actor_id):
        if tournament_id == self._failing_id:
            raise self._error
        return super().cancel_unconfirmed_registrations(conn, tournament_id, actor_id)


def test_failure_is_isolated_to_one_tournament(db_conn, make_tournament, make_team, now):
    bad = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None, id="bad")
    good = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None, id="good")
    make_team(bad.id, ("a1", "a2"))
    make_team(good.id, ("b1", "b2"))
    service = StatusService(cancellation_service=_FailingCancellation("bad"))

    result = service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 1
    assert [e.tournament_id for e in result.errors] == ["bad"]
    assert "locked" in result.errors[0].message
    # the failed tournament's status write was rolled back with it
    assert _status(db_conn, bad.id) == TournamentStatus.REGISTRATION_CLOSED
    assert _status(db_conn, good.id) == TournamentStatus.IN_PROGRESS


def test_constraint_error_is_isolated_to_one_tournament(db_conn, make_tournament, make_team, now):
    bad = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None, id="bad")
    good = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None, id="good")
    make_team(bad.id, ("a1", "a2"))
    make_team(good.id, ("b1", "b2"))
    failing = _FailingCancellation("bad", sqlite3.IntegrityError("FOREIGN KEY constraint failed"))

    result = StatusService(cancellation_service=failing).update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 1
    assert [e.tournament_id for e in result.errors] == ["bad"]
    assert "FOREIGN KEY" in result.errors[0].message
    assert _status(db_conn, bad.id) == TournamentStatus.REGISTRATION_CLOSED
    assert _status(db_conn, good.id) == TournamentStatus.IN_PROGRESS


def test_unreadable_row_is_reported_and_skipped(db_conn, status_service, make_tournament, make_team, now):
    db_conn.execute(
        "INSERT INTO tournaments (id, name, type, status, registration_start, registration_end, "
        "tournament_start, ranking_points, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        ("broken", "Broken", "SWISS", "REGISTRATION_CLOSED", "not-a-date", "not-a-date",
         "2000-01-01T00:00:00.000000+00:00", 1000, "2026-01-01T00:00:00.000000+00:00"),
    )
    good = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None, id="good")
    make_team(good.id, ("b1", "b2"))

    result = status_service.update_tournament_statuses_automatically(db_conn, now=now)
    assert [e.tournament_id for e in result.errors] == ["broken"]
    assert _status(db_conn, good.id) == TournamentStatus.IN_PROGRESS


class _BrokenAuditLogger:
    def log(self, actor, action, entity_id, description, old_data=None, new_data=None):
        raise RuntimeError("audit store unavailable")


def test_audit_failure_does_not_block_status_change(db_conn, upcoming, now):
    t = upcoming(TournamentStatus.PUBLISHED)
    service = StatusService(audit_factory=lambda conn: _BrokenAuditLogger())
    result = service.update_tournament_statuses_automatically(db_conn, now=now)
    assert result.updated_count == 1
    assert _status(db_conn, t.id) == TournamentStatus.REGISTRATION_OPEN
    assert AuditLogRepository().list_by_entity(db_conn, t.id) == []


# ---------- Preview ----------


def test_preview_lists_due_changes_without_writing(db_conn, status_service, upcoming, make_tournament, now):
    opening = upcoming(TournamentStatus.PUBLISHED)
    empty = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None)

    suggestions = {s.tournament_id: s for s in status_service.tournaments_needing_status_update(db_conn, now=now)}
    assert suggestions[opening.id].suggested_status == "REGISTRATION_OPEN"
    assert suggestions[opening.id].reason == "Registration start date reached"
    assert suggestions[empty.id].suggested_status == "REGISTRATION_CLOSED"
    assert suggestions[empty.id].reason == "No teams registered"
    assert _status(db_conn, opening.id) == TournamentStatus.PUBLISHED


def test_check_single_tournament(db_conn, status_service, upcoming, now):
    due = upcoming(TournamentStatus.PUBLISHED)
    not_due = upcoming(TournamentStatus.PUBLISHED, registration_start=now + timedelta(days=1))
    assert status_service.check_tournament_status(db_conn, due.id, now=now).suggested_status == "REGISTRATION_OPEN"
    assert status_service.check_tournament_status(db_conn, not_due.id, now=now) is None
    with pytest.raises(NotFound):
        status_service.check_tournament_status(db_conn, "missing", now=now)


# ---------- Administrative changes ----------


def test_manual_publish(db_conn, status_service, make_tournament, now):
    t = make_tournament(status=TournamentStatus.DRAFT, tournament_end=None)
    change = status_service.change_tournament_status(db_conn, t.id, "PUBLISHED", "admin-1", now=now)
    assert change.old_status == "DRAFT"
    assert change.new_status == "PUBLISHED"
    assert _status(db_conn, t.id) == TournamentStatus.PUBLISHED
    entry = AuditLogRepository().list_by_entity(db_conn, t.id)[0]
    assert entry["actor_id"] == "admin-1"


def test_disallowed_manual_change_lists_allowed_targets(db_conn, status_service, make_tournament, now):
    t = make_tournament(status=TournamentStatus.DRAFT, tournament_end=None)
    with pytest.raises(InvalidTransition) as exc:
        status_service.change_tournament_status(db_conn, t.id, "COMPLETED", "admin-1", now=now)
    assert exc.value.allowed == ["CANCELLED", "PUBLISHED"]
    assert _status(db_conn, t.id) == TournamentStatus.DRAFT


def test_unknown_status_and_tournament(db_conn, status_service, make_tournament, now):
    t = make_tournament(status=TournamentStatus.DRAFT)
    with pytest.raises(InvalidState):
        status_service.change_tournament_status(db_conn, t.id, "ARCHIVED", "admin-1", now=now)
    with pytest.raises(NotFound):
        status_service.change_tournament_status(db_conn, "missing", "PUBLISHED", "admin-1", now=now)


def test_open_registration_guard(db_conn, status_service, upcoming, now):
    t = upcoming(TournamentStatus.PUBLISHED, registration_start=now + timedelta(days=1))
    with pytest.raises(InvalidTransition, match="registration has not started"):
        status_service.change_tournament_status(db_conn, t.id, "REGISTRATION_OPEN", "admin-1", now=now)


def test_manual_start_requires_teams(db_conn, status_service, make_tournament, now):
    t = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None)
    with pytest.raises(InvalidTransition, match="no teams"):
        status_service.change_tournament_status(db_conn, t.id, "IN_PROGRESS", "admin-1", now=now)


def test_manual_start_runs_cascade(db_conn, status_service, make_tournament, make_team, now):
    t = make_tournament(status=TournamentStatus.REGISTRATION_CLOSED, tournament_end=None)
    team = make_team(t.id, ("a1", "a2"), registration_status=RegistrationStatus.WAITLIST)
    change = status_service.change_tournament_status(db_conn, t.id, "IN_PROGRESS", "admin-1", now=now)
    assert change.cancellation.cancelled_registrations == 2
    assert change.cancellation.cancelled_teams == 1
    assert TeamRepository().get(db_conn, team.id).status == TeamStatus.CANCELLED
    reg = RegistrationRepository().get(db_conn, team.registration1_id)
    assert reg.registration_status == RegistrationStatus.CANCELLED


def test_back_to_closed_refused_after_a_played_match(db_conn, status_service, make_tournament, make_team, make_match, now):
    t = make_tournament(status=TournamentStatus.IN_PROGRESS, tournament_end=None)
    t1 = make_team(t.id, ("a1", "a2"))
    t2 = make_team(t.id, ("b1", "b2"))
    make_match(t.id, PhaseType.GROUP_STAGE, t1.id, t2.id, t1.id, status=MatchStatus.COMPLETED)
    with pytest.raises(InvalidTransition, match="matches have already been played"):
        status_service.change_tournament_status(db_conn, t.id, "REGISTRATION_CLOSED", "admin-1", now=now)


def test_completing_sets_end_date(db_conn, status_service, make_tournament, make_team, now):
    t = make_tournament(status=TournamentStatus.IN_PROGRESS, tournament_end=None)
    make_team(t.id, ("a1", "a2"))
    change = status_service.change_tournament_status(db_conn, t.id, "COMPLETED", "admin-1", now=now)
    assert change.results is None
    assert TournamentRepository().get(db_conn, t.id).tournament_end == now


def test_completing_with_processing(db_conn, status_service, eight_team_bracket, now):
    TournamentRepository().update_status_if(
        db_conn, eight_team_bracket.id, TournamentStatus.COMPLETED, TournamentStatus.IN_PROGRESS, now
    )
    change = status_service.change_tournament_status(
        db_conn, eight_team_bracket.id, "COMPLETED", "admin-1", now=now, process_results=True
    )
    assert change.results is not None
    assert change.results.positions_assigned == 16
    assert change.results.rankings_updated == 16


def test_create_returns_the_stored_tournament(db_conn, make_tournament):
    created = make_tournament(status=TournamentStatus.DRAFT, id="t-new")
    assert created == TournamentRepository().get(db_conn, "t-new")
    assert created.status == "DRAFT"
