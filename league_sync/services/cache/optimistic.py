"""
Optimistic updates over cached state.

A Transition pairs a state change with its inverse. The change is applied
before the durable write is attempted; if the write fails the inverse is
applied and the error propagates.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from league_sync.models.enums import RosterAction, RosterStatus
from league_sync.services.availability.calculator import (
    AvailabilityRecord,
    PlayerAvailabilityCalculator,
    availability_key,
)
from league_sync.services.cache.swr_cache import CacheEntry
from league_sync.services.sync.rosters import RosterService, RosterTransaction, TransactionResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Transition:
    apply: Callable[[], None]
    revert: Callable[[], None]


async def run_optimistic(transition: Transition, commit: Callable[[], Awaitable[T]]) -> T:
    """Apply the transition, await commit, and revert if commit raises."""
    transition.apply()
    try:
        return await commit()
    except Exception:
        transition.revert()
        raise


class OptimisticRosterUpdater:
    """
    Shows a roster move in cached availability before it is stored.

    Readers of the availability cache see the tentative owner immediately.
    On success the touched keys are dropped so the next read re-derives from
    the store; on failure the previous cache entries are put back.
    """

    def __init__(self, roster_service: RosterService, calculator: PlayerAvailabilityCalculator):
        self.roster_service = roster_service
        self.calculator = calculator

    def _keys(self, txn: RosterTransaction) -> List[str]:
        keys = [availability_key(txn.player_id, txn.season_id, txn.week)]
        if txn.conference_id is not None:
            keys.append(availability_key(txn.player_id, txn.season_id, txn.week, txn.conference_id))
        return keys

    def _tentative(self, txn: RosterTransaction, conference_id: Optional[int]) -> AvailabilityRecord:
        if txn.action == RosterAction.DROP:
            return AvailabilityRecord(
                player_id=txn.player_id, season_id=txn.season_id, week=txn.week,
                is_available=True, conference_id=conference_id,
            )
        return AvailabilityRecord(
            player_id=txn.player_id,
            season_id=txn.season_id,
            week=txn.week,
            is_available=False,
            conference_id=conference_id,
            owned_by_team_id=txn.to_team_id,
            owned_by_conference_id=txn.conference_id,
            roster_status=RosterStatus(txn.roster_status).value,
        )

    def transition_for(self, txn: RosterTransaction) -> Transition:
        cache = self.calculator.cache
        keys = self._keys(txn)
        snapshot: Dict[str, Optional[CacheEntry]] = {}

        def apply() -> None:
            for key in keys:
                snapshot[key] = cache.peek(key)
                scope = txn.conference_id if key.endswith(f":{txn.conference_id}") else None
                cache.set(key, self._tentative(txn, scope))

        def revert() -> None:
            for key in keys:
                previous = snapshot.get(key)
                if previous is None:
                    cache.invalidate(key)
                else:
                    cache.set(key, previous.value, written_at=previous.written_at)

        return Transition(apply=apply, revert=revert)

    async def apply(self, txn: RosterTransaction) -> TransactionResult:
        """
        Apply a roster transaction optimistically.

        Raises:
            RosterTransactionError / StoreError: after cached state is restored
        """
        try:
            result = await run_optimistic(
                self.transition_for(txn),
                lambda: self.roster_service.apply_transaction(txn),
            )
        except Exception as e:
            logger.warning(f"Rolled back optimistic {txn.action.value} for player {txn.player_id}: {e}")
            raise
        self.calculator.invalidate(txn.player_id)
        return result
