"""
Ranking points for one player in one completed tournament.
Pure functions: no I/O, identical inputs give identical breakdowns.

Formula: participation + position share of the tournament's ranking points
+ per-win bonus + per-set bonus, then tournament-type and participant-count
multipliers taken from a ScoringPolicy.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from tournament_results.models import TournamentStats, TournamentType
from tournament_results.schemas import PointsBreakdown

# ---------- Core constants ----------
PARTICIPATION_POINTS = 50
MAX_SCORING_POSITION = 17

# Bonuses are expressed per 1000 tournament ranking points
VICTORY_BONUS_PER_1000 = 25
SET_BONUS_PER_1000 = 5

# Percent of tournament ranking points awarded per final position (1 = champion)
POSITION_PERCENTAGES: dict[int, int] = {
    1: 100,
    2: 70,
    3: 50,
    4: 40,
    **{p: 30 for p in range(5, 9)},    # quarterfinal losers
    **{p: 20 for p in range(9, 17)},   # round-of-16 losers
    17: 10,                            # round-of-32 losers
}

# ---------- Multiplier tables (used by WEIGHTED_POLICY) ----------
TOURNAMENT_TYPE_MULTIPLIERS: dict[TournamentType, float] = {
    TournamentType.SINGLE_ELIMINATION: 1.2,
    TournamentType.DOUBLE_ELIMINATION: 1.3,
    TournamentType.ROUND_ROBIN: 1.1,
    TournamentType.SWISS: 1.1,
    TournamentType.GROUP_STAGE_ELIMINATION: 1.4,
    TournamentType.AMERICANO: 1.0,
    TournamentType.AMERICANO_SOCIAL: 1.0,
}

# (minimum participants, multiplier), checked top-down
PARTICIPANT_BRACKETS: tuple[tuple[int, float], ...] = (
    (32, 1.5),
    (16, 1.3),
    (8, 1.1),
)


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Multiplier policy. A table set to None disables that multiplier (forced 1.0).
    """
    name: str
    tournament_multipliers: Mapping[TournamentType, float] | None = None
    participant_brackets: tuple[tuple[int, float], ...] | None = None

    def tournament_multiplier(self, tournament_type: str) -> tuple[float, str]:
        if self.tournament_multipliers is None:
            return 1.0, "disabled"
        try:
            key = TournamentType(tournament_type)
        except ValueError:
            return 1.0, f"unknown type {tournament_type}"
        value = self.tournament_multipliers.get(key, 1.0)
        return value, key.value

    def participant_multiplier(self, participant_count: int) -> tuple[float, str]:
        if self.participant_brackets is None:
            return 1.0, "disabled"
        for minimum, value in self.participant_brackets:
            if participant_count >= minimum:
                return value, f"{participant_count} participants (>= {minimum})"
        return 1.0, f"{participant_count} participants"


# Current policy: both multipliers pinned to 1.0
NEUTRAL_POLICY = ScoringPolicy(name="neutral")
WEIGHTED_POLICY = ScoringPolicy(
    name="weighted",
    tournament_multipliers=TOURNAMENT_TYPE_MULTIPLIERS,
    participant_brackets=PARTICIPANT_BRACKETS,
)

POLICIES: dict[str, ScoringPolicy] = {
    NEUTRAL_POLICY.name: NEUTRAL_POLICY,
    WEIGHTED_POLICY.name: WEIGHTED_POLICY,
}


def _round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def position_percentage(final_position: int | None) -> int:
    """Percent of ranking points for a final position; 0 when unknown or outside the table."""
    if final_position is None or final_position < 1 or final_position > MAX_SCORING_POSITION:
        return 0
    return POSITION_PERCENTAGES.get(final_position, 0)


def _position_points(ranking_points: int, final_position: int | None) -> tuple[int, int]:
    pct = position_percentage(final_position)
    return _round_half_up(ranking_points * pct / 100), pct


def _victory_bonus(ranking_points: int, matches_won: int) -> tuple[int, int]:
    per_win = _round_half_up(ranking_points * VICTORY_BONUS_PER_1000 / 1000)
    return matches_won * per_win, per_win


def _set_bonus(ranking_points: int, sets_won: int) -> tuple[int, int]:
    per_set = _round_half_up(ranking_points * SET_BONUS_PER_1000 / 1000)
    return sets_won * per_set, per_set


def calculate_points(
    stats: TournamentStats,
    ranking_points: int,
    tournament_type: str,
    participant_count: int,
    policy: ScoringPolicy = NEUTRAL_POLICY,
) -> PointsBreakdown:
    """
    Compute the points breakdown for one player's stats in one tournament.
    """
    position_points, pct = _position_points(ranking_points, stats.final_position)
    victory_bonus, per_win = _victory_bonus(ranking_points, stats.matches_won)
    set_bonus, per_set = _set_bonus(ranking_points, stats.sets_won)
    subtotal = PARTICIPATION_POINTS + position_points + victory_bonus + set_bonus

    t_mult, t_label = policy.tournament_multiplier(tournament_type)
    p_mult, p_label = policy.participant_multiplier(participant_count)
    after_tournament = subtotal * t_mult
    after_participant = after_tournament * p_mult

    return PointsBreakdown(
        participation_points=PARTICIPATION_POINTS,
        position=stats.final_position,
        position_percentage=pct,
        position_points=position_points,
        victories_count=stats.matches_won,
        victory_bonus_per_win=per_win,
        victory_bonus=victory_bonus,
        sets_count=stats.sets_won,
        set_bonus_per_set=per_set,
        set_bonus=set_bonus,
        subtotal=subtotal,
        tournament_multiplier=t_mult,
        tournament_multiplier_label=t_label,
        after_tournament_multiplier=after_tournament,
        participant_multiplier=p_mult,
        participant_multiplier_label=p_label,
        after_participant_multiplier=after_participant,
        final_total=_round_half_up(after_participant),
    )
