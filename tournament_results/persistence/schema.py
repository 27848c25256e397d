"""
SQLite schema for tournament results entities.
Migration-friendly: each table created with IF NOT EXISTS.
Datetimes are stored as UTC ISO-8601 text so they compare lexically.
"""
from __future__ import annotations


def tournaments_schema() -> str:
    """status: DRAFT | PUBLISHED | REGISTRATION_OPEN | REGISTRATION_CLOSED | IN_PROGRESS | COMPLETED | CANCELLED."""
    return """
    CREATE TABLE IF NOT EXISTS tournaments (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'DRAFT',
        registration_start TEXT NOT NULL,
        registration_end TEXT NOT NULL,
        tournament_start TEXT NOT NULL,
        tournament_end TEXT,
        ranking_points INTEGER NOT NULL DEFAULT 1000,
        created_at TEXT NOT NULL,
        updated_at TEXT
    );
    CREATE INDEX IF NOT EXISTS ix_tournaments_status ON tournaments(status);
    """


def registrations_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS registrations (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        registration_status TEXT NOT NULL DEFAULT 'PENDING',
        created_at TEXT NOT NULL,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id)
    );
    CREATE INDEX IF NOT EXISTS ix_registrations_tournament ON registrations(tournament_id);
    CREATE INDEX IF NOT EXISTS ix_registrations_player ON registrations(player_id);
    """


def payments_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS payments (
        id TEXT PRIMARY KEY,
        registration_id TEXT NOT NULL,
        amount REAL NOT NULL,
        payment_status TEXT NOT NULL DEFAULT 'PENDING',
        created_at TEXT NOT NULL,
        FOREIGN KEY (registration_id) REFERENCES registrations(id)
    );
    CREATE INDEX IF NOT EXISTS ix_payments_registration ON payments(registration_id);
    """


def teams_schema() -> str:
    """A team owns exactly two registrations (doubles pairing)."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        registration1_id TEXT NOT NULL,
        registration2_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'DRAFT',
        created_at TEXT NOT NULL,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id),
        FOREIGN KEY (registration1_id) REFERENCES registrations(id),
        FOREIGN KEY (registration2_id) REFERENCES registrations(id)
    );
    CREATE INDEX IF NOT EXISTS ix_teams_tournament ON teams(tournament_id);
    """


def matches_schema() -> str:
    """winner_team_id is set only for COMPLETED / WALKOVER matches."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        phase_type TEXT NOT NULL,
        round_number INTEGER NOT NULL DEFAULT 1,
        team1_id TEXT,
        team2_id TEXT,
        winner_team_id TEXT,
        status TEXT NOT NULL DEFAULT 'SCHEDULED',
        created_at TEXT NOT NULL,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id),
        FOREIGN KEY (team1_id) REFERENCES teams(id),
        FOREIGN KEY (team2_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_matches_tournament ON matches(tournament_id);
    """


def tournament_stats_schema() -> str:
    """One row per (tournament, player). final_position NULL until inferred."""
    return """
    CREATE TABLE IF NOT EXISTS tournament_stats (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        matches_played INTEGER NOT NULL DEFAULT 0,
        matches_won INTEGER NOT NULL DEFAULT 0,
        sets_won INTEGER NOT NULL DEFAULT 0,
        sets_lost INTEGER NOT NULL DEFAULT 0,
        games_won INTEGER NOT NULL DEFAULT 0,
        games_lost INTEGER NOT NULL DEFAULT 0,
        final_position INTEGER,
        points_earned INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_tournament_stats_tournament_player
        ON tournament_stats(tournament_id, player_id);
    CREATE INDEX IF NOT EXISTS ix_tournament_stats_player ON tournament_stats(player_id);
    """


def player_rankings_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS player_rankings (
        player_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        season_year INTEGER NOT NULL,
        current_points INTEGER NOT NULL DEFAULT 0,
        last_updated TEXT NOT NULL,
        PRIMARY KEY (player_id, category_id, season_year)
    );
    """


def audit_logs_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id TEXT PRIMARY KEY,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        description TEXT NOT NULL,
        old_data TEXT,
        new_data TEXT,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_audit_logs_entity ON audit_logs(entity_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution, parents before children."""
    return "\n".join([
        tournaments_schema(),
        registrations_schema(),
        payments_schema(),
        teams_schema(),
        matches_schema(),
        tournament_stats_schema(),
        player_rankings_schema(),
        audit_logs_schema(),
    ])
