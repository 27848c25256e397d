"""
Shared fixtures: a temporary results database per test and builders for
tournaments, teams, stats and an 8-team single-elimination bracket.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tournament_results.config import get_settings
from tournament_results.models import (
    MatchStatus,
    PhaseType,
    RegistrationStatus,
    TeamStatus,
    TournamentStatus,
    TournamentType,
)
from tournament_results.persistence.db import get_connection, init_db, set_db_path
from tournament_results.persistence.repositories import (
    MatchRepository,
    RegistrationRepository,
    TeamRepository,
    TournamentRepository,
    TournamentStatsRepository,
)

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
CATEGORY = "CAT-A"


@pytest.fixture(autouse=True)
def results_env(tmp_path, monkeypatch):
    """Point settings and the connection factory at a fresh file for every test."""
    db_path = tmp_path / "results_test.db"
    monkeypatch.setenv("RESULTS_DB_PATH", str(db_path))
    monkeypatch.delenv("RESULTS_MULTIPLIER_POLICY", raising=False)
    monkeypatch.delenv("RESULTS_SYSTEM_ACTOR", raising=False)
    get_settings.cache_clear()
    set_db_path(db_path)
    yield db_path
    get_settings.cache_clear()


@pytest.fixture
def db_conn(results_env):
    init_db(results_env)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_tournament(db_conn):
    """Tournament whose registration and play dates all lie before NOW by default."""
    repo = TournamentRepository()

    def _make(
        status=TournamentStatus.COMPLETED,
        type=TournamentType.SINGLE_ELIMINATION,
        ranking_points=1000,
        registration_start=NOW - timedelta(days=30),
        registration_end=NOW - timedelta(days=10),
        tournament_start=NOW - timedelta(days=5),
        tournament_end=NOW - timedelta(days=1),
        name="Summer Open",
        id=None,
    ):
        return repo.create(
            db_conn, name, type, registration_start, registration_end, tournament_start,
            tournament_end=tournament_end, ranking_points=ranking_points, status=status, id=id,
        )

    return _make


@pytest.fixture
def make_team(db_conn):
    """Two registrations for the given players plus the team holding them."""
    reg_repo = RegistrationRepository()
    team_repo = TeamRepository()

    def _make(
        tournament_id,
        players,
        category_id=CATEGORY,
        registration_status=RegistrationStatus.CONFIRMED,
        status=TeamStatus.CONFIRMED,
        id=None,
    ):
        r1 = reg_repo.create(db_conn, tournament_id, category_id, players[0], registration_status)
        r2 = reg_repo.create(db_conn, tournament_id, category_id, players[1], registration_status)
        return team_repo.create(db_conn, tournament_id, category_id, r1.id, r2.id, status=status, id=id)

    return _make


@pytest.fixture
def make_stats(db_conn):
    repo = TournamentStatsRepository()

    def _make(tournament_id, player_ids, matches_won=0, sets_won=0, matches_played=None):
        played = matches_played if matches_played is not None else matches_won + 1
        return [
            repo.create(db_conn, tournament_id, pid, matches_played=played, matches_won=matches_won, sets_won=sets_won)
            for pid in player_ids
        ]

    return _make


@pytest.fixture
def make_match(db_conn):
    repo = MatchRepository()

    def _make(tournament_id, phase, team1_id, team2_id, winner_id=None, status=None):
        if status is None:
            status = MatchStatus.COMPLETED if winner_id else MatchStatus.SCHEDULED
        return repo.create(db_conn, tournament_id, phase, team1_id, team2_id, winner_team_id=winner_id, status=status)

    return _make


def team_players(index, prefix="p"):
    """Players of team k are p{2k-1} and p{2k}."""
    return (f"{prefix}{2 * index - 1}", f"{prefix}{2 * index}")


@pytest.fixture
def eight_team_bracket(make_tournament, make_team, make_stats, make_match):
    """
    COMPLETED single-elimination tournament, 8 teams T1..T8 in CAT-A.
    QF: T1>T8, T2>T7, T3>T6, T4>T5. SF: T1>T4, T2>T3. 3rd: T3>T4. Final: T1>T2.
    Each win is recorded as 2 sets won.
    """
    tournament = make_tournament()
    teams = {k: make_team(tournament.id, team_players(k), id=f"T{k}") for k in range(1, 9)}
    wins = {1: 3, 2: 2, 3: 2, 4: 1, 5: 0, 6: 0, 7: 0, 8: 0}
    for k, won in wins.items():
        make_stats(tournament.id, team_players(k), matches_won=won, sets_won=2 * won)

    for a, b in ((1, 8), (2, 7), (3, 6), (4, 5)):
        make_match(tournament.id, PhaseType.QUARTERFINALS, teams[a].id, teams[b].id, teams[a].id)
    make_match(tournament.id, PhaseType.SEMIFINALS, teams[1].id, teams[4].id, teams[1].id)
    make_match(tournament.id, PhaseType.SEMIFINALS, teams[2].id, teams[3].id, teams[2].id)
    make_match(tournament.id, PhaseType.THIRD_PLACE, teams[3].id, teams[4].id, teams[3].id)
    make_match(tournament.id, PhaseType.FINAL, teams[1].id, teams[2].id, teams[1].id)
    return tournament
