"""
Runtime configuration from environment variables.

RESULTS_DB_PATH            SQLite file (default: <project>/data/results.db)
RESULTS_DB_TIMEOUT         seconds to wait on a locked database (default 5)
RESULTS_LOG_LEVEL          DEBUG | INFO | WARNING | ERROR (default INFO)
RESULTS_SYSTEM_ACTOR       actor id recorded for automatic changes (default "system")
RESULTS_MULTIPLIER_POLICY  neutral | weighted (default neutral)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from tournament_results.scoring import POLICIES, ScoringPolicy


def _default_db_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "results.db"


@dataclass(frozen=True)
class Settings:
    db_path: Path
    db_timeout: float = 5.0
    log_level: str = "INFO"
    system_actor: str = "system"
    multiplier_policy: str = "neutral"

    @classmethod
    def from_env(cls) -> "Settings":
        db_path = os.environ.get("RESULTS_DB_PATH", "").strip()
        policy = os.environ.get("RESULTS_MULTIPLIER_POLICY", "neutral").strip().lower()
        if policy not in POLICIES:
            raise ValueError(
                f"RESULTS_MULTIPLIER_POLICY must be one of {sorted(POLICIES)} (got {policy!r})"
            )
        return cls(
            db_path=Path(db_path) if db_path else _default_db_path(),
            db_timeout=float(os.environ.get("RESULTS_DB_TIMEOUT", "5")),
            log_level=os.environ.get("RESULTS_LOG_LEVEL", "INFO").strip().upper(),
            system_actor=os.environ.get("RESULTS_SYSTEM_ACTOR", "system").strip() or "system",
            multiplier_policy=policy,
        )

    def scoring_policy(self) -> ScoringPolicy:
        return POLICIES[self.multiplier_policy]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings read once per process. Tests call get_settings.cache_clear() after patching env."""
    return Settings.from_env()


def configure_logging(level: str | None = None) -> None:
    """Root handler for command-line use. Library code only creates loggers."""
    logging.basicConfig(
        level=(level or get_settings().log_level).strip().upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
