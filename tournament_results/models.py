"""
Data models for the tournament results backend.
Domain objects only; no persistence or service logic.

A tournament has teams (pairs of registrations) grouped in categories; matches
between teams feed per-player TournamentStats, which in turn feed the seasonal
PlayerRanking of each (player, category, season year).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Tournament status (state machine) ----------
class TournamentStatus(str, Enum):
    """Lifecycle: draft → published → registration open → closed → in progress → completed."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    REGISTRATION_OPEN = "REGISTRATION_OPEN"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ---------- Tournament type ----------
class TournamentType(str, Enum):
    SINGLE_ELIMINATION = "SINGLE_ELIMINATION"
    DOUBLE_ELIMINATION = "DOUBLE_ELIMINATION"
    ROUND_ROBIN = "ROUND_ROBIN"
    SWISS = "SWISS"
    GROUP_STAGE_ELIMINATION = "GROUP_STAGE_ELIMINATION"
    AMERICANO = "AMERICANO"
    AMERICANO_SOCIAL = "AMERICANO_SOCIAL"


# ---------- Match phase ----------
class PhaseType(str, Enum):
    """Bracket depth label of a match. Knockout phases listed from shallowest to deepest."""
    GROUP_STAGE = "GROUP_STAGE"
    ROUND_OF_32 = "ROUND_OF_32"
    ROUND_OF_16 = "ROUND_OF_16"
    QUARTERFINALS = "QUARTERFINALS"
    SEMIFINALS = "SEMIFINALS"
    THIRD_PLACE = "THIRD_PLACE"
    FINAL = "FINAL"


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    WALKOVER = "WALKOVER"
    CANCELLED = "CANCELLED"


# Only these statuses carry a winner.
TERMINAL_MATCH_STATUSES = (MatchStatus.COMPLETED, MatchStatus.WALKOVER)


class TeamStatus(str, Enum):
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class RegistrationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    WAITLIST = "WAITLIST"


# Registrations in these states are never touched by the cancellation cascade.
SETTLED_REGISTRATION_STATUSES = (
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.PAID,
    RegistrationStatus.CANCELLED,
)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


# ---------- Tournament ----------
@dataclass
class Tournament:
    """
    A tournament. ranking_points is the base scoring unit for position points.
    Dates drive the automatic status transitions.
    """
    id: str
    name: str
    type: str  # TournamentType value
    status: str  # TournamentStatus value
    registration_start: datetime
    registration_end: datetime
    tournament_start: datetime
    tournament_end: datetime | None
    ranking_points: int
    updated_at: datetime | None = None


# ---------- Registration ----------
@dataclass
class Registration:
    """One player's individual entry into a tournament category."""
    id: str
    tournament_id: str
    category_id: str
    player_id: str
    registration_status: str  # RegistrationStatus value


# ---------- Payment ----------
@dataclass
class Payment:
    id: str
    registration_id: str
    amount: float
    payment_status: str  # PaymentStatus value


# ---------- Team ----------
@dataclass
class Team:
    """A doubles pairing of two registrations in one category."""
    id: str
    tournament_id: str
    category_id: str
    registration1_id: str
    registration2_id: str
    status: str  # TeamStatus value


@dataclass(frozen=True)
class TeamRoster:
    """A team with both players resolved through its registrations."""
    team_id: str
    category_id: str
    player_ids: tuple[str, str]


# ---------- Match ----------
@dataclass
class Match:
    """
    A match between two teams. winner_team_id is set only when status is
    COMPLETED or WALKOVER.
    """
    id: str
    tournament_id: str
    phase_type: str  # PhaseType value
    round_number: int
    team1_id: str | None
    team2_id: str | None
    winner_team_id: str | None
    status: str  # MatchStatus value


@dataclass(frozen=True)
class DecidedMatch:
    """A terminal match with both rosters resolved; input to bracket inference."""
    match_id: str
    phase_type: PhaseType
    team1: TeamRoster
    team2: TeamRoster
    winner_team_id: str

    @property
    def winner(self) -> TeamRoster:
        return self.team1 if self.winner_team_id == self.team1.team_id else self.team2

    @property
    def loser(self) -> TeamRoster:
        return self.team2 if self.winner_team_id == self.team1.team_id else self.team1


# ---------- TournamentStats ----------
@dataclass
class TournamentStats:
    """
    Per-player, per-tournament aggregates. Rows are created by match recording;
    the results pipeline only updates final_position and points_earned.
    """
    id: str
    tournament_id: str
    player_id: str
    matches_played: int = 0
    matches_won: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    final_position: int | None = None
    points_earned: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "player_id": self.player_id,
            "matches_played": self.matches_played,
            "matches_won": self.matches_won,
            "sets_won": self.sets_won,
            "sets_lost": self.sets_lost,
            "games_won": self.games_won,
            "games_lost": self.games_lost,
            "final_position": self.final_position,
            "points_earned": self.points_earned,
        }


# ---------- PlayerRanking ----------
@dataclass
class PlayerRanking:
    """Seasonal total per (player, category, season year). Never deleted here."""
    player_id: str
    category_id: str
    season_year: int
    current_points: int
    last_updated: datetime
