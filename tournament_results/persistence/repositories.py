"""
Repository interfaces for tournament results data.
No business logic, only read/write operations. Repositories never commit;
callers group writes with persistence.db.transaction.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from tournament_results.models import (
    DecidedMatch,
    Match,
    MatchStatus,
    Payment,
    PaymentStatus,
    PhaseType,
    PlayerRanking,
    Registration,
    RegistrationStatus,
    SETTLED_REGISTRATION_STATUSES,
    Team,
    TeamRoster,
    TeamStatus,
    TERMINAL_MATCH_STATUSES,
    Tournament,
    TournamentStats,
    TournamentStatus,
)

logger = logging.getLogger(__name__)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _parse_optional(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def to_iso(dt: datetime) -> str:
    """UTC, fixed width, so stored values compare correctly as text. Naive means UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


def _value(v: Any) -> Any:
    """Enum members are stored by value."""
    return getattr(v, "value", v)


# ---------- TournamentRepository ----------


class TournamentRepository:
    """CRUD for tournaments plus the conditional status write used by the state machine."""

    _COLS = (
        "id, name, type, status, registration_start, registration_end, "
        "tournament_start, tournament_end, ranking_points, updated_at"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        type: str,
        registration_start: datetime,
        registration_end: datetime,
        tournament_start: datetime,
        tournament_end: datetime | None = None,
        ranking_points: int = 1000,
        status: str = TournamentStatus.DRAFT,
        id: str | None = None,
    ) -> Tournament:
        tid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO tournaments (id, name, type, status, registration_start, registration_end, "
            "tournament_start, tournament_end, ranking_points, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                tid, name, _value(type), _value(status),
                to_iso(registration_start), to_iso(registration_end), to_iso(tournament_start),
                to_iso(tournament_end) if tournament_end else None,
                ranking_points, _now_iso(),
            ),
        )
        return self.get(conn, tid) or Tournament(
            id=tid, name=name, type=_value(type), status=_value(status),
            registration_start=registration_start, registration_end=registration_end,
            tournament_start=tournament_start, tournament_end=tournament_end,
            ranking_points=ranking_points,
        )

    def _row_to_tournament(self, r: sqlite3.Row) -> Tournament:
        return Tournament(
            id=r["id"],
            name=r["name"],
            type=r["type"],
            status=r["status"],
            registration_start=_parse_datetime(r["registration_start"]),
            registration_end=_parse_datetime(r["registration_end"]),
            tournament_start=_parse_datetime(r["tournament_start"]),
            tournament_end=_parse_optional(r["tournament_end"]),
            ranking_points=r["ranking_points"],
            updated_at=_parse_optional(r["updated_at"]),
        )

    def get(self, conn: sqlite3.Connection, tournament_id: str) -> Tournament | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM tournaments WHERE id = ?", (tournament_id,)
        ).fetchone()
        return self._row_to_tournament(row) if row is not None else None

    def list_by_status(self, conn: sqlite3.Connection, status: str) -> list[Tournament]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM tournaments WHERE status = ? ORDER BY tournament_start, id",
            (_value(status),),
        ).fetchall()
        return [self._row_to_tournament(r) for r in rows]

    def list_ids_by_status(self, conn: sqlite3.Connection, status: str) -> list[str]:
        """Ids only, so one unreadable row does not hide the others."""
        rows = conn.execute(
            "SELECT id FROM tournaments WHERE status = ? ORDER BY tournament_start, id", (_value(status),)
        ).fetchall()
        return [r["id"] for r in rows]

    def update_status_if(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        expected_status: str,
        new_status: str,
        now: datetime,
    ) -> int:
        """Write new_status only if the row is still in expected_status. Returns rows changed (0 or 1)."""
        cur = conn.execute(
            "UPDATE tournaments SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (_value(new_status), to_iso(now), tournament_id, _value(expected_status)),
        )
        return cur.rowcount

    def update_tournament_end(self, conn: sqlite3.Connection, tournament_id: str, tournament_end: datetime) -> None:
        conn.execute(
            "UPDATE tournaments SET tournament_end = ? WHERE id = ?",
            (to_iso(tournament_end), tournament_id),
        )


# ---------- RegistrationRepository ----------


class RegistrationRepository:
    """CRUD for registrations."""

    _COLS = "id, tournament_id, category_id, player_id, registration_status"

    def create(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        category_id: str,
        player_id: str,
        registration_status: str = RegistrationStatus.PENDING,
        id: str | None = None,
    ) -> Registration:
        rid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO registrations (id, tournament_id, category_id, player_id, registration_status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (rid, tournament_id, category_id, player_id, _value(registration_status), _now_iso()),
        )
        return Registration(
            id=rid, tournament_id=tournament_id, category_id=category_id,
            player_id=player_id, registration_status=_value(registration_status),
        )

    @staticmethod
    def _row_to_registration(r: sqlite3.Row) -> Registration:
        return Registration(
            id=r["id"],
            tournament_id=r["tournament_id"],
            category_id=r["category_id"],
            player_id=r["player_id"],
            registration_status=r["registration_status"],
        )

    def get(self, conn: sqlite3.Connection, registration_id: str) -> Registration | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM registrations WHERE id = ?", (registration_id,)
        ).fetchone()
        return self._row_to_registration(row) if row is not None else None

    def list_unsettled(self, conn: sqlite3.Connection, tournament_id: str) -> list[Registration]:
        """Registrations not yet CONFIRMED, PAID or CANCELLED."""
        settled = [s.value for s in SETTLED_REGISTRATION_STATUSES]
        rows = conn.execute(
            f"SELECT {self._COLS} FROM registrations WHERE tournament_id = ? "
            f"AND registration_status NOT IN ({_placeholders(len(settled))}) ORDER BY id",
            (tournament_id, *settled),
        ).fetchall()
        return [self._row_to_registration(r) for r in rows]

    def update_status(self, conn: sqlite3.Connection, registration_id: str, status: str) -> None:
        conn.execute(
            "UPDATE registrations SET registration_status = ? WHERE id = ?",
            (_value(status), registration_id),
        )


# ---------- PaymentRepository ----------


class PaymentRepository:
    """CRUD for payments."""

    def create(
        self,
        conn: sqlite3.Connection,
        registration_id: str,
        amount: float,
        payment_status: str = PaymentStatus.PENDING,
        id: str | None = None,
    ) -> Payment:
        pid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO payments (id, registration_id, amount, payment_status, created_at) VALUES (?, ?, ?, ?, ?)",
            (pid, registration_id, amount, _value(payment_status), _now_iso()),
        )
        return Payment(id=pid, registration_id=registration_id, amount=amount, payment_status=_value(payment_status))

    def list_by_registration(self, conn: sqlite3.Connection, registration_id: str) -> list[Payment]:
        rows = conn.execute(
            "SELECT id, registration_id, amount, payment_status FROM payments WHERE registration_id = ? ORDER BY id",
            (registration_id,),
        ).fetchall()
        return [
            Payment(id=r["id"], registration_id=r["registration_id"], amount=r["amount"], payment_status=r["payment_status"])
            for r in rows
        ]


# ---------- TeamRepository ----------


class TeamRepository:
    """CRUD for teams. Rosters resolve both players through the team's registrations."""

    _COLS = "id, tournament_id, category_id, registration1_id, registration2_id, status"

    def create(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        category_id: str,
        registration1_id: str,
        registration2_id: str,
        status: str = TeamStatus.CONFIRMED,
        id: str | None = None,
    ) -> Team:
        tid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO teams (id, tournament_id, category_id, registration1_id, registration2_id, status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (tid, tournament_id, category_id, registration1_id, registration2_id, _value(status), _now_iso()),
        )
        return Team(
            id=tid, tournament_id=tournament_id, category_id=category_id,
            registration1_id=registration1_id, registration2_id=registration2_id, status=_value(status),
        )

    @staticmethod
    def _row_to_team(r: sqlite3.Row) -> Team:
        return Team(
            id=r["id"],
            tournament_id=r["tournament_id"],
            category_id=r["category_id"],
            registration1_id=r["registration1_id"],
            registration2_id=r["registration2_id"],
            status=r["status"],
        )

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(f"SELECT {self._COLS} FROM teams WHERE id = ?", (team_id,)).fetchone()
        return self._row_to_team(row) if row is not None else None

    def count_by_tournament(self, conn: sqlite3.Connection, tournament_id: str) -> int:
        row = conn.execute("SELECT COUNT(*) FROM teams WHERE tournament_id = ?", (tournament_id,)).fetchone()
        return int(row[0])

    def list_active_by_registrations(
        self, conn: sqlite3.Connection, tournament_id: str, registration_ids: Iterable[str]
    ) -> list[Team]:
        """Non-cancelled teams of the tournament holding any of the given registrations."""
        ids = list(registration_ids)
        if not ids:
            return []
        ph = _placeholders(len(ids))
        rows = conn.execute(
            f"SELECT {self._COLS} FROM teams WHERE tournament_id = ? AND status != ? "
            f"AND (registration1_id IN ({ph}) OR registration2_id IN ({ph})) ORDER BY id",
            (tournament_id, TeamStatus.CANCELLED.value, *ids, *ids),
        ).fetchall()
        return [self._row_to_team(r) for r in rows]

    def update_status(self, conn: sqlite3.Connection, team_id: str, status: str) -> None:
        conn.execute("UPDATE teams SET status = ? WHERE id = ?", (_value(status), team_id))

    def list_rosters(self, conn: sqlite3.Connection, tournament_id: str) -> list[TeamRoster]:
        rows = conn.execute(
            """
            SELECT t.id AS team_id, t.category_id, r1.player_id AS player1_id, r2.player_id AS player2_id
            FROM teams t
            JOIN registrations r1 ON r1.id = t.registration1_id
            JOIN registrations r2 ON r2.id = t.registration2_id
            WHERE t.tournament_id = ?
            ORDER BY t.id
            """,
            (tournament_id,),
        ).fetchall()
        return [
            TeamRoster(team_id=r["team_id"], category_id=r["category_id"], player_ids=(r["player1_id"], r["player2_id"]))
            for r in rows
        ]


# ---------- MatchRepository ----------


class MatchRepository:
    """CRUD for matches."""

    def create(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        phase_type: str,
        team1_id: str | None,
        team2_id: str | None,
        winner_team_id: str | None = None,
        status: str = MatchStatus.SCHEDULED,
        round_number: int = 1,
        id: str | None = None,
    ) -> Match:
        if winner_team_id is not None and _value(status) not in {s.value for s in TERMINAL_MATCH_STATUSES}:
            raise ValueError(f"winner_team_id requires status COMPLETED or WALKOVER (got {_value(status)})")
        mid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO matches (id, tournament_id, phase_type, round_number, team1_id, team2_id, "
            "winner_team_id, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (mid, tournament_id, _value(phase_type), round_number, team1_id, team2_id,
             winner_team_id, _value(status), _now_iso()),
        )
        return Match(
            id=mid, tournament_id=tournament_id, phase_type=_value(phase_type), round_number=round_number,
            team1_id=team1_id, team2_id=team2_id, winner_team_id=winner_team_id, status=_value(status),
        )

    def count_by_status(self, conn: sqlite3.Connection, tournament_id: str, status: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) FROM matches WHERE tournament_id = ? AND status = ?",
            (tournament_id, _value(status)),
        ).fetchone()
        return int(row[0])

    def list_decided(self, conn: sqlite3.Connection, tournament_id: str) -> list[DecidedMatch]:
        """
        COMPLETED / WALKOVER matches with a winner and both rosters resolved.
        Matches whose winner is neither team, or whose phase is unknown, are skipped.
        """
        rosters = {r.team_id: r for r in TeamRepository().list_rosters(conn, tournament_id)}
        terminal = [s.value for s in TERMINAL_MATCH_STATUSES]
        rows = conn.execute(
            f"SELECT id, phase_type, team1_id, team2_id, winner_team_id FROM matches "
            f"WHERE tournament_id = ? AND status IN ({_placeholders(len(terminal))}) "
            f"AND winner_team_id IS NOT NULL ORDER BY id",
            (tournament_id, *terminal),
        ).fetchall()
        decided: list[DecidedMatch] = []
        for r in rows:
            team1 = rosters.get(r["team1_id"])
            team2 = rosters.get(r["team2_id"])
            if team1 is None or team2 is None:
                logger.warning("Match %s skipped: team roster incomplete", r["id"])
                continue
            if r["winner_team_id"] not in (team1.team_id, team2.team_id):
                logger.warning("Match %s skipped: winner %s is not one of its teams", r["id"], r["winner_team_id"])
                continue
            try:
                phase = PhaseType(r["phase_type"])
            except ValueError:
                logger.warning("Match %s skipped: unknown phase %s", r["id"], r["phase_type"])
                continue
            decided.append(DecidedMatch(
                match_id=r["id"], phase_type=phase, team1=team1, team2=team2,
                winner_team_id=r["winner_team_id"],
            ))
        return decided


# ---------- TournamentStatsRepository ----------


class TournamentStatsRepository:
    """Per-player tournament stats. The results pipeline only writes final_position and points_earned."""

    _COLS = (
        "id, tournament_id, player_id, matches_played, matches_won, sets_won, sets_lost, "
        "games_won, games_lost, final_position, points_earned"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        player_id: str,
        matches_played: int = 0,
        matches_won: int = 0,
        sets_won: int = 0,
        sets_lost: int = 0,
        games_won: int = 0,
        games_lost: int = 0,
        id: str | None = None,
    ) -> TournamentStats:
        sid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO tournament_stats (id, tournament_id, player_id, matches_played, matches_won, "
            "sets_won, sets_lost, games_won, games_lost) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (sid, tournament_id, player_id, matches_played, matches_won, sets_won, sets_lost, games_won, games_lost),
        )
        return TournamentStats(
            id=sid, tournament_id=tournament_id, player_id=player_id,
            matches_played=matches_played, matches_won=matches_won,
            sets_won=sets_won, sets_lost=sets_lost, games_won=games_won, games_lost=games_lost,
        )

    @staticmethod
    def _row_to_stats(r: sqlite3.Row) -> TournamentStats:
        return TournamentStats(
            id=r["id"],
            tournament_id=r["tournament_id"],
            player_id=r["player_id"],
            matches_played=r["matches_played"],
            matches_won=r["matches_won"],
            sets_won=r["sets_won"],
            sets_lost=r["sets_lost"],
            games_won=r["games_won"],
            games_lost=r["games_lost"],
            final_position=r["final_position"],
            points_earned=r["points_earned"],
        )

    def get(self, conn: sqlite3.Connection, tournament_id: str, player_id: str) -> TournamentStats | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM tournament_stats WHERE tournament_id = ? AND player_id = ?",
            (tournament_id, player_id),
        ).fetchone()
        return self._row_to_stats(row) if row is not None else None

    def list_by_tournament(self, conn: sqlite3.Connection, tournament_id: str) -> list[TournamentStats]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM tournament_stats WHERE tournament_id = ? ORDER BY player_id",
            (tournament_id,),
        ).fetchall()
        return [self._row_to_stats(r) for r in rows]

    def clear_final_positions(self, conn: sqlite3.Connection, tournament_id: str) -> int:
        cur = conn.execute(
            "UPDATE tournament_stats SET final_position = NULL WHERE tournament_id = ?", (tournament_id,)
        )
        return cur.rowcount

    def set_final_position(self, conn: sqlite3.Connection, tournament_id: str, player_id: str, position: int) -> int:
        cur = conn.execute(
            "UPDATE tournament_stats SET final_position = ? WHERE tournament_id = ? AND player_id = ?",
            (position, tournament_id, player_id),
        )
        return cur.rowcount

    def set_points(self, conn: sqlite3.Connection, stats_id: str, points: int) -> None:
        conn.execute("UPDATE tournament_stats SET points_earned = ? WHERE id = ?", (points, stats_id))

    def reset_results(self, conn: sqlite3.Connection, tournament_id: str) -> int:
        """points_earned = 0 and final_position = NULL for every row of the tournament."""
        cur = conn.execute(
            "UPDATE tournament_stats SET points_earned = 0, final_position = NULL WHERE tournament_id = ?",
            (tournament_id,),
        )
        return cur.rowcount

    def sum_season_points(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        category_id: str,
        season_start: datetime,
        season_end: datetime,
    ) -> int:
        """
        Sum of points_earned over COMPLETED tournaments ending in [season_start, season_end)
        where the player had a team in category_id.
        """
        row = conn.execute(
            """
            SELECT COALESCE(SUM(s.points_earned), 0)
            FROM tournament_stats s
            JOIN tournaments t ON t.id = s.tournament_id
            WHERE s.player_id = ?
              AND t.status = ?
              AND t.tournament_end >= ? AND t.tournament_end < ?
              AND EXISTS (
                  SELECT 1 FROM teams tm
                  JOIN registrations r ON r.id IN (tm.registration1_id, tm.registration2_id)
                  WHERE tm.tournament_id = t.id AND tm.category_id = ? AND r.player_id = s.player_id
              )
            """,
            (player_id, TournamentStatus.COMPLETED.value, to_iso(season_start), to_iso(season_end), category_id),
        ).fetchone()
        return int(row[0])


# ---------- PlayerRankingRepository ----------


class PlayerRankingRepository:
    """Seasonal ranking rows keyed by (player_id, category_id, season_year). Upsert only."""

    def upsert(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        category_id: str,
        season_year: int,
        current_points: int,
        now: datetime,
    ) -> None:
        conn.execute(
            """
            INSERT INTO player_rankings (player_id, category_id, season_year, current_points, last_updated)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (player_id, category_id, season_year)
            DO UPDATE SET current_points = excluded.current_points, last_updated = excluded.last_updated
            """,
            (player_id, category_id, season_year, current_points, to_iso(now)),
        )

    @staticmethod
    def _row_to_ranking(r: sqlite3.Row) -> PlayerRanking:
        return PlayerRanking(
            player_id=r["player_id"],
            category_id=r["category_id"],
            season_year=r["season_year"],
            current_points=r["current_points"],
            last_updated=_parse_datetime(r["last_updated"]),
        )

    def get(self, conn: sqlite3.Connection, player_id: str, category_id: str, season_year: int) -> PlayerRanking | None:
        row = conn.execute(
            "SELECT player_id, category_id, season_year, current_points, last_updated FROM player_rankings "
            "WHERE player_id = ? AND category_id = ? AND season_year = ?",
            (player_id, category_id, season_year),
        ).fetchone()
        return self._row_to_ranking(row) if row is not None else None

    def list_by_category(self, conn: sqlite3.Connection, category_id: str, season_year: int) -> list[PlayerRanking]:
        rows = conn.execute(
            "SELECT player_id, category_id, season_year, current_points, last_updated FROM player_rankings "
            "WHERE category_id = ? AND season_year = ? ORDER BY current_points DESC, player_id",
            (category_id, season_year),
        ).fetchall()
        return [self._row_to_ranking(r) for r in rows]


# ---------- AuditLogRepository ----------


class AuditLogRepository:
    """Append-only audit entries."""

    def create(
        self,
        conn: sqlite3.Connection,
        actor_id: str,
        action: str,
        entity_id: str,
        description: str,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
    ) -> str:
        aid = str(uuid.uuid4())
        conn.execute(
            "INSERT INTO audit_logs (id, actor_id, action, entity_id, description, old_data, new_data, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                aid, actor_id, action, entity_id, description,
                json.dumps(old_data, default=str) if old_data is not None else None,
                json.dumps(new_data, default=str) if new_data is not None else None,
                _now_iso(),
            ),
        )
        return aid

    def list_by_entity(self, conn: sqlite3.Connection, entity_id: str) -> list[dict[str, Any]]:
        rows = conn.execute(
            "SELECT actor_id, action, entity_id, description, old_data, new_data, created_at "
            "FROM audit_logs WHERE entity_id = ? ORDER BY created_at, id",
            (entity_id,),
        ).fetchall()
        result: list[dict[str, Any]] = []
        for r in rows:
            d = dict(r)
            d["old_data"] = json.loads(d["old_data"]) if d["old_data"] else None
            d["new_data"] = json.loads(d["new_data"]) if d["new_data"] else None
            result.append(d)
        return result
