"""
Persistence layer for tournament results.
No business logic: read/write interfaces and the transaction boundary.
"""
from .db import get_connection, init_db, set_db_path, transaction
from .repositories import (
    AuditLogRepository,
    MatchRepository,
    PaymentRepository,
    PlayerRankingRepository,
    RegistrationRepository,
    TeamRepository,
    TournamentRepository,
    TournamentStatsRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "transaction",
    "AuditLogRepository",
    "MatchRepository",
    "PaymentRepository",
    "PlayerRankingRepository",
    "RegistrationRepository",
    "TeamRepository",
    "TournamentRepository",
    "TournamentStatsRepository",
]
