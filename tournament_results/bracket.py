"""
Final standings inferred from the decided matches of one tournament.

Each decided match places its losing pair by phase depth. The FINAL also
places the winners as champions, and the THIRD_PLACE match settles 3rd vs 4th
for both of its pairs. The play-off result replaces the 3rd both pairs got
from their semifinal, so its loser ends 4th even though 3 is better.
Otherwise a player eliminated more than once (double elimination) keeps the
best position reached.
"""
from __future__ import annotations

from typing import Iterable

from tournament_results.models import DecidedMatch, PhaseType

CHAMPION_POSITION = 1
RUNNER_UP_POSITION = 2
THIRD_PLACE_WINNER_POSITION = 3
THIRD_PLACE_LOSER_POSITION = 4

# Position of the losing pair per phase. One entry per PhaseType member.
LOSER_POSITION: dict[PhaseType, int] = {
    PhaseType.FINAL: RUNNER_UP_POSITION,
    PhaseType.THIRD_PLACE: THIRD_PLACE_LOSER_POSITION,
    PhaseType.SEMIFINALS: 3,
    PhaseType.QUARTERFINALS: 5,
    PhaseType.ROUND_OF_16: 9,
    PhaseType.ROUND_OF_32: 17,
    PhaseType.GROUP_STAGE: 10,
}

_unmapped = set(PhaseType) - set(LOSER_POSITION)
if _unmapped:
    raise RuntimeError(f"LOSER_POSITION missing phases: {sorted(p.value for p in _unmapped)}")

# Deepest phase first; processing order does not change the result.
PHASE_DEPTH: dict[PhaseType, int] = {
    PhaseType.FINAL: 0,
    PhaseType.THIRD_PLACE: 1,
    PhaseType.SEMIFINALS: 2,
    PhaseType.QUARTERFINALS: 3,
    PhaseType.ROUND_OF_16: 4,
    PhaseType.ROUND_OF_32: 5,
    PhaseType.GROUP_STAGE: 6,
}


def _keep_best(positions: dict[str, int], player_ids: Iterable[str], position: int) -> None:
    for pid in player_ids:
        current = positions.get(pid)
        if current is None or position < current:
            positions[pid] = position


def infer_final_positions(matches: Iterable[DecidedMatch]) -> dict[str, int]:
    """
    Return player_id -> final position (1 = champion) for every player placed
    by at least one decided match. Players never placed are absent.
    """
    eliminations: dict[str, int] = {}
    third_place: dict[str, int] = {}
    champions: set[str] = set()

    for match in sorted(matches, key=lambda m: (PHASE_DEPTH[m.phase_type], m.match_id)):
        if match.phase_type == PhaseType.THIRD_PLACE:
            # The play-off decides both pairs; it supersedes the semifinal placement.
            _keep_best(third_place, match.winner.player_ids, THIRD_PLACE_WINNER_POSITION)
            _keep_best(third_place, match.loser.player_ids, THIRD_PLACE_LOSER_POSITION)
            continue
        _keep_best(eliminations, match.loser.player_ids, LOSER_POSITION[match.phase_type])
        if match.phase_type == PhaseType.FINAL:
            champions.update(match.winner.player_ids)

    positions = dict(eliminations)
    positions.update(third_place)
    for pid in champions:
        positions[pid] = CHAMPION_POSITION
    return positions
