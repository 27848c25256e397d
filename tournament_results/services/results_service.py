"""
Results pipeline for a completed tournament.

Order is fixed: bracket positions -> points -> rankings. Points read
final_position and rankings read points_earned, so each step depends on the
previous one. The whole run is one transaction under the tournament's lock;
every write overwrites its target, so a retry from scratch is safe.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from tournament_results.bracket import infer_final_positions
from tournament_results.config import get_settings
from tournament_results.errors import InvalidState, NotFound
from tournament_results.models import Tournament, TournamentStatus
from tournament_results.persistence.db import transaction
from tournament_results.persistence.repositories import (
    MatchRepository,
    TeamRepository,
    TournamentRepository,
    TournamentStatsRepository,
)
from tournament_results.schemas import PlayerResult, ReversionResult, TournamentResultsSummary
from tournament_results.scoring import ScoringPolicy, calculate_points
from tournament_results.services.locking import TournamentLocks, tournament_locks
from tournament_results.services.ranking_service import RankingService, player_categories

logger = logging.getLogger(__name__)


class ResultsService:
    """Runs the results pipeline and exposes the reversal path."""

    def __init__(
        self,
        policy: ScoringPolicy | None = None,
        locks: TournamentLocks = tournament_locks,
        ranking_service: RankingService | None = None,
        tournament_repo: TournamentRepository | None = None,
        match_repo: MatchRepository | None = None,
        team_repo: TeamRepository | None = None,
        stats_repo: TournamentStatsRepository | None = None,
    ) -> None:
        self._policy = policy or get_settings().scoring_policy()
        self._locks = locks
        self._ranking_service = ranking_service or RankingService(locks=locks)
        self._tournament_repo = tournament_repo or TournamentRepository()
        self._match_repo = match_repo or MatchRepository()
        self._team_repo = team_repo or TeamRepository()
        self._stats_repo = stats_repo or TournamentStatsRepository()

    # ---------- Steps ----------

    def assign_final_positions(self, conn: sqlite3.Connection, tournament_id: str) -> dict[str, int]:
        """
        Infer standings from decided matches and write them. Positions from a
        previous run are cleared first so removed matches leave no stale value.
        """
        positions = infer_final_positions(self._match_repo.list_decided(conn, tournament_id))
        self._stats_repo.clear_final_positions(conn, tournament_id)
        for player_id, position in sorted(positions.items()):
            if not self._stats_repo.set_final_position(conn, tournament_id, player_id, position):
                logger.warning("Tournament %s: no stats row for placed player %s", tournament_id, player_id)
        logger.info("Tournament %s: %d final positions assigned", tournament_id, len(positions))
        return positions

    def calculate_tournament_points(self, conn: sqlite3.Connection, tournament: Tournament) -> list[PlayerResult]:
        """
        Compute and write points_earned for every stats row. Participant count is
        the number of teams in the player's category times two.
        """
        rosters = self._team_repo.list_rosters(conn, tournament.id)
        categories = player_categories(rosters)
        teams_per_category: dict[str, int] = {}
        for roster in rosters:
            teams_per_category[roster.category_id] = teams_per_category.get(roster.category_id, 0) + 1

        results: list[PlayerResult] = []
        for stats in self._stats_repo.list_by_tournament(conn, tournament.id):
            category_id = categories.get(stats.player_id)
            if category_id is None:
                # Without a team there is no category to rank in; points_earned is left as is.
                logger.info("Tournament %s: player %s has no team; points skipped", tournament.id, stats.player_id)
                results.append(PlayerResult(
                    player_id=stats.player_id, final_position=stats.final_position,
                    points_earned=stats.points_earned,
                ))
                continue
            breakdown = calculate_points(
                stats,
                tournament.ranking_points,
                tournament.type,
                teams_per_category[category_id] * 2,
                self._policy,
            )
            self._stats_repo.set_points(conn, stats.id, breakdown.final_total)
            results.append(PlayerResult(
                player_id=stats.player_id,
                category_id=category_id,
                final_position=stats.final_position,
                points_earned=breakdown.final_total,
                breakdown=breakdown,
            ))
        return results

    # ---------- Entry points ----------

    def process_completed_tournament(
        self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None
    ) -> TournamentResultsSummary:
        """
        Positions, then points, then rankings for a COMPLETED tournament.
        Raises NotFound, or InvalidState when the tournament is not COMPLETED
        or has no teams or no stats.
        """
        now = now or datetime.now(timezone.utc)
        with self._locks.hold(tournament_id), transaction(conn):
            tournament = self._tournament_repo.get(conn, tournament_id)
            if tournament is None:
                raise NotFound("Tournament", tournament_id)
            if tournament.status != TournamentStatus.COMPLETED:
                raise InvalidState(
                    f"Tournament must be COMPLETED to calculate points (current: {tournament.status})"
                )
            if self._team_repo.count_by_tournament(conn, tournament_id) == 0:
                raise InvalidState(f"Tournament {tournament_id} has no teams")
            if not self._stats_repo.list_by_tournament(conn, tournament_id):
                raise InvalidState(f"Tournament {tournament_id} has no player stats")

            logger.info("Processing results for tournament %s (%s)", tournament_id, tournament.name)
            positions = self.assign_final_positions(conn, tournament_id)
            players = self.calculate_tournament_points(conn, tournament)
            rankings = self._ranking_service.update_player_rankings(conn, tournament_id, now=now)

        return TournamentResultsSummary(
            tournament_id=tournament_id,
            positions_assigned=len(positions),
            players=players,
            rankings_updated=rankings,
        )

    def revert_tournament_results(
        self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None
    ) -> ReversionResult:
        """Zero the tournament's stats and recompute affected rankings (tournament must not be COMPLETED)."""
        return self._ranking_service.recalculate_player_rankings_after_tournament_reversion(conn, tournament_id, now=now)
