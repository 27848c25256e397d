"""
Seasonal ranking aggregation.

PlayerRanking.current_points is always recomputed from scratch as the sum of
points_earned over the player's COMPLETED tournaments ending in the season
year, restricted to tournaments where the player had a team in the category.
Recomputing (never incrementing) keeps repeated runs and reversals exact.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from tournament_results.errors import InvalidState, NotFound
from tournament_results.models import TeamRoster, TournamentStatus
from tournament_results.persistence.db import transaction
from tournament_results.persistence.repositories import (
    PlayerRankingRepository,
    TeamRepository,
    TournamentRepository,
    TournamentStatsRepository,
)
from tournament_results.schemas import ReversionResult
from tournament_results.services.locking import TournamentLocks, tournament_locks

logger = logging.getLogger(__name__)


def season_bounds(season_year: int) -> tuple[datetime, datetime]:
    """[Jan 1 of season_year, Jan 1 of the next year) in UTC."""
    return (
        datetime(season_year, 1, 1, tzinfo=timezone.utc),
        datetime(season_year + 1, 1, 1, tzinfo=timezone.utc),
    )


def player_categories(rosters: list[TeamRoster]) -> dict[str, str]:
    """player_id -> category_id of the player's first team in the tournament."""
    categories: dict[str, str] = {}
    for roster in rosters:
        for pid in roster.player_ids:
            categories.setdefault(pid, roster.category_id)
    return categories


class RankingService:
    """Forward ranking update after processing, and the reversal path."""

    def __init__(
        self,
        locks: TournamentLocks = tournament_locks,
        tournament_repo: TournamentRepository | None = None,
        team_repo: TeamRepository | None = None,
        stats_repo: TournamentStatsRepository | None = None,
        ranking_repo: PlayerRankingRepository | None = None,
    ) -> None:
        self._locks = locks
        self._tournament_repo = tournament_repo or TournamentRepository()
        self._team_repo = team_repo or TeamRepository()
        self._stats_repo = stats_repo or TournamentStatsRepository()
        self._ranking_repo = ranking_repo or PlayerRankingRepository()

    def _recompute(
        self, conn: sqlite3.Connection, player_id: str, category_id: str, season_year: int, now: datetime
    ) -> int:
        start, end = season_bounds(season_year)
        total = self._stats_repo.sum_season_points(conn, player_id, category_id, start, end)
        self._ranking_repo.upsert(conn, player_id, category_id, season_year, total, now)
        logger.debug("Ranking %s/%s/%d = %d", player_id, category_id, season_year, total)
        return total

    def update_player_rankings(
        self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None
    ) -> int:
        """
        Recompute the season total of every player with stats in the tournament.
        Players without a team in the tournament are skipped. Returns rankings written.
        """
        now = now or datetime.now(timezone.utc)
        updated = 0
        with transaction(conn):
            if self._tournament_repo.get(conn, tournament_id) is None:
                raise NotFound("Tournament", tournament_id)
            categories = player_categories(self._team_repo.list_rosters(conn, tournament_id))
            for stats in self._stats_repo.list_by_tournament(conn, tournament_id):
                category_id = categories.get(stats.player_id)
                if category_id is None:
                    logger.info("Player %s has stats but no team in %s; ranking skipped", stats.player_id, tournament_id)
                    continue
                self._recompute(conn, stats.player_id, category_id, now.year, now)
                updated += 1
        logger.info("Tournament %s: %d rankings updated for season %d", tournament_id, updated, now.year)
        return updated

    def recalculate_player_rankings_after_tournament_reversion(
        self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None
    ) -> ReversionResult:
        """
        Undo a tournament's contribution after COMPLETED -> IN_PROGRESS: zero its
        stats, then recompute every (player, category) that had a team in it.
        The tournament must no longer be COMPLETED.
        """
        now = now or datetime.now(timezone.utc)
        with self._locks.hold(tournament_id), transaction(conn):
            tournament = self._tournament_repo.get(conn, tournament_id)
            if tournament is None:
                raise NotFound("Tournament", tournament_id)
            if tournament.status == TournamentStatus.COMPLETED:
                raise InvalidState(
                    f"Tournament {tournament_id} is still COMPLETED; change its status before reverting rankings"
                )
            reset = self._stats_repo.reset_results(conn, tournament_id)
            pairs = {
                (pid, roster.category_id)
                for roster in self._team_repo.list_rosters(conn, tournament_id)
                for pid in roster.player_ids
            }
            for player_id, category_id in sorted(pairs):
                self._recompute(conn, player_id, category_id, now.year, now)
        logger.info(
            "Tournament %s reverted: %d stats reset, %d rankings recomputed", tournament_id, reset, len(pairs)
        )
        return ReversionResult(tournament_id=tournament_id, stats_reset=reset, rankings_updated=len(pairs))
