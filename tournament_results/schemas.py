"""
Result schemas returned by the services. Serialisable for display and audit.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PointsBreakdown(BaseModel):
    """Every intermediate quantity of the points formula for one player."""
    participation_points: int
    position: int | None = Field(None, description="Final position used; None when not inferred")
    position_percentage: int = Field(..., description="Percent of the tournament ranking points awarded for the position")
    position_points: int
    victories_count: int
    victory_bonus_per_win: int
    victory_bonus: int
    sets_count: int
    set_bonus_per_set: int
    set_bonus: int
    subtotal: int
    tournament_multiplier: float
    tournament_multiplier_label: str
    after_tournament_multiplier: float
    participant_multiplier: float
    participant_multiplier_label: str
    after_participant_multiplier: float
    final_total: int


class PlayerResult(BaseModel):
    player_id: str
    category_id: str | None = None
    final_position: int | None = None
    points_earned: int
    breakdown: PointsBreakdown | None = Field(None, description="None when the player has no team in the tournament")


class TournamentResultsSummary(BaseModel):
    """Outcome of one results-pipeline run."""
    tournament_id: str
    positions_assigned: int
    players: list[PlayerResult] = Field(default_factory=list)
    rankings_updated: int = 0


class ReversionResult(BaseModel):
    tournament_id: str
    stats_reset: int
    rankings_updated: int


class CancellationResult(BaseModel):
    cancelled_registrations: int = 0
    cancelled_teams: int = 0
    protected_registrations: int = Field(0, description="Unconfirmed registrations kept because of a PAID payment")
    audit_failures: int = Field(0, description="Audit entries that could not be written")


class StatusUpdateError(BaseModel):
    tournament_id: str
    message: str


class StatusUpdateResult(BaseModel):
    """Summary of one automatic status pass."""
    updated_count: int = 0
    errors: list[StatusUpdateError] = Field(default_factory=list)
    cancelled_registrations: int = 0
    cancelled_teams: int = 0
    ran_at: datetime

    @property
    def error_count(self) -> int:
        return len(self.errors)


class StatusChangeSuggestion(BaseModel):
    tournament_id: str
    name: str
    current_status: str
    suggested_status: str
    reason: str


class StatusChangeResult(BaseModel):
    tournament_id: str
    old_status: str
    new_status: str
    cancellation: CancellationResult | None = None
    reversion: ReversionResult | None = None
    results: TournamentResultsSummary | None = None
