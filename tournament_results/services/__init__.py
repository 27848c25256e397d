"""
Service layer: status state machine, cancellation cascade, results pipeline.
Services own the transaction boundary; repositories only read and write.
"""
from .cancellation_service import CancellationService
from .locking import TournamentLocks, tournament_locks
from .ranking_service import RankingService
from .results_service import ResultsService
from .status_service import StatusService

__all__ = [
    "CancellationService",
    "RankingService",
    "ResultsService",
    "StatusService",
    "TournamentLocks",
    "tournament_locks",
]
