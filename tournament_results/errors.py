"""
Error taxonomy for the results backend.
Services raise these; batch operations catch TransientStoreError per tournament.
"""
from __future__ import annotations


class TournamentResultsError(Exception):
    """Base class for all errors raised by this package."""


class NotFound(TournamentResultsError):
    """A tournament, match or team does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidState(TournamentResultsError):
    """Operation not allowed in the entity's current state (e.g. points on a non-completed tournament)."""


class InvalidTransition(InvalidState):
    """Administrative status change not allowed from the current status."""

    def __init__(self, current: str, requested: str, allowed: list[str] | None = None, reason: str | None = None) -> None:
        msg = f"Invalid transition: {current} -> {requested}"
        if reason:
            msg += f" ({reason})"
        elif allowed is not None:
            msg += f". Allowed from {current}: {allowed}"
        super().__init__(msg)
        self.current = current
        self.requested = requested
        self.allowed = allowed or []


class TransientStoreError(TournamentResultsError):
    """Store failure inside a transaction (locked database, disk error, constraint, corrupt file)."""


class LoggingFailure(TournamentResultsError):
    """Audit log write failed. Never propagated past the audit sink."""
