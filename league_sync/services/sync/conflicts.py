"""
Conflict resolution between a stored roster entry and a fresh snapshot.

A conflict is a stored current entry whose roster status differs from what
the external platform now reports for the same (team, player, season).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from league_sync.models.enums import ConflictStrategy

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Resolver = Callable[[Record, Record], Record]


@dataclass(frozen=True)
class ConflictDecision:
    winner: Record
    use_remote: bool
    needs_review: bool = False


def _latest_wins(local: Record, remote: Record) -> Record:
    """Newer last_updated wins; equal timestamps fall back to the higher id."""
    local_ts: Optional[datetime] = local.get('last_updated')
    remote_ts: Optional[datetime] = remote.get('last_updated')
    if local_ts and remote_ts and local_ts != remote_ts:
        return remote if remote_ts > local_ts else local
    if remote_ts and not local_ts:
        return remote
    if local_ts and not remote_ts:
        return local
    # A snapshot has no id yet; it is the newer observation
    if remote.get('id') is None:
        return remote
    return remote if remote['id'] >= (local.get('id') or 0) else local


@dataclass
class ConflictResolution:
    """
    Policy used by roster reconciliation.

    Args:
        strategy: Built-in strategy
        resolve: Optional custom callable (local, remote) -> winner that
            overrides the strategy; it must return one of its arguments
    """
    strategy: ConflictStrategy = ConflictStrategy.LATEST_WINS
    resolve: Optional[Resolver] = None

    def decide(self, local: Record, remote: Record) -> ConflictDecision:
        if self.resolve is not None:
            winner = self.resolve(local, remote)
            return ConflictDecision(winner=winner, use_remote=winner is remote)

        if self.strategy == ConflictStrategy.API_PRIORITY:
            return ConflictDecision(winner=remote, use_remote=True)

        if self.strategy == ConflictStrategy.MANUAL_REVIEW:
            logger.info(
                f"Roster conflict for player {local.get('player_id')} on team "
                f"{local.get('team_id')} held for review "
                f"({local.get('roster_status')} vs {remote.get('roster_status')})"
            )
            return ConflictDecision(winner=local, use_remote=False, needs_review=True)

        winner = _latest_wins(local, remote)
        return ConflictDecision(winner=winner, use_remote=winner is remote)
