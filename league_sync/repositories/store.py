"""
Persistent store gateway.

Generic paginated CRUD over named collections. Callers never see ORM objects,
only plain dicts, and every failure surfaces as StoreError. Each write is
committed on its own: there is no multi-row transaction, so reconciliation
code must be safe to re-run.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from league_sync.exceptions import StoreError
from league_sync.models import (
    AvailabilityCacheEntry,
    Conference,
    Player,
    RosterEntry,
    RosterHistoryEntry,
    Season,
    SyncStatus,
    Team,
    TeamConference,
    TeamRecord,
)
from league_sync.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

COLLECTIONS = {
    'seasons': Season,
    'conferences': Conference,
    'teams': Team,
    'team_conference_junction': TeamConference,
    'team_records': TeamRecord,
    'players': Player,
    'team_rosters': RosterEntry,
    'roster_history': RosterHistoryEntry,
    'player_availability_cache': AvailabilityCacheEntry,
    'sync_status': SyncStatus,
}


@dataclass(frozen=True)
class Filter:
    """A single `field <op> value` condition."""
    name: str
    op: str
    value: Any


@dataclass
class Page:
    """One page of a collection plus the total matching row count."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0


FilterLike = Union[Filter, Tuple[str, str, Any]]


def _as_triples(filters: Optional[Iterable[FilterLike]]) -> List[Tuple[str, str, Any]]:
    triples = []
    for f in filters or []:
        if isinstance(f, Filter):
            triples.append((f.name, f.op, f.value))
        else:
            triples.append(tuple(f))
    return triples


class StoreGateway:
    """
    CRUD over the collections in COLLECTIONS.

    Every method is a coroutine so callers treat each store call as a
    suspension point, whatever the backing session does.
    """

    def __init__(self, db: Session):
        self.db = db
        self._repos: Dict[str, BaseRepository] = {}

    def _repo(self, collection: str) -> BaseRepository:
        repo = self._repos.get(collection)
        if repo is None:
            model = COLLECTIONS.get(collection)
            if model is None:
                raise StoreError(collection, 'lookup', 'unknown collection')
            repo = BaseRepository(model, self.db)
            self._repos[collection] = repo
        return repo

    def _fail(self, collection: str, operation: str, error: Exception) -> StoreError:
        self.db.rollback()
        logger.error(f"Store {operation} on {collection} failed: {error}")
        return StoreError(collection, operation, str(error))

    async def page(
        self,
        collection: str,
        filters: Optional[Iterable[FilterLike]] = None,
        order_by: Optional[Union[str, Sequence[str]]] = None,
        page_no: int = 1,
        page_size: int = 100,
    ) -> Page:
        """
        Read one page of a collection.

        Args:
            collection: Collection name
            filters: Filter objects or (field, op, value) triples, ANDed
            order_by: Field name(s), '-' prefix for descending
            page_no: 1-based page number
            page_size: Rows per page

        Returns:
            Page with the rows as dicts and the total match count
        """
        repo = self._repo(collection)
        triples = _as_triples(filters)
        try:
            criteria = repo.build_criteria(triples)
            total = repo.count(*criteria)
            rows = repo.search(
                filters=triples,
                order_by=order_by,
                limit=page_size,
                offset=(max(page_no, 1) - 1) * page_size,
            )
            return Page(items=[repo.to_dict(row) for row in rows], total=total)
        except (SQLAlchemyError, ValueError) as e:
            raise self._fail(collection, 'page', e)

    async def iter_all(
        self,
        collection: str,
        filters: Optional[Iterable[FilterLike]] = None,
        order_by: Optional[Union[str, Sequence[str]]] = None,
        page_size: int = 500,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield every matching row, one page at a time."""
        page_no = 1
        filters = list(filters or [])
        while True:
            page = await self.page(collection, filters, order_by, page_no, page_size)
            for item in page.items:
                yield item
            if page_no * page_size >= page.total or not page.items:
                return
            page_no += 1

    async def list_all(
        self,
        collection: str,
        filters: Optional[Iterable[FilterLike]] = None,
        order_by: Optional[Union[str, Sequence[str]]] = None,
    ) -> List[Dict[str, Any]]:
        """All matching rows as a list."""
        return [row async for row in self.iter_all(collection, filters, order_by)]

    async def first(
        self,
        collection: str,
        filters: Optional[Iterable[FilterLike]] = None,
        order_by: Optional[Union[str, Sequence[str]]] = None,
    ) -> Optional[Dict[str, Any]]:
        page = await self.page(collection, filters, order_by, page_no=1, page_size=1)
        return page.items[0] if page.items else None

    async def get(self, collection: str, id: int) -> Optional[Dict[str, Any]]:
        repo = self._repo(collection)
        try:
            instance = repo.find_by_id(id)
        except SQLAlchemyError as e:
            raise self._fail(collection, 'get', e)
        return repo.to_dict(instance) if instance is not None else None

    async def create(self, collection: str, record: Dict[str, Any]) -> int:
        """Insert a row and return its id."""
        repo = self._repo(collection)
        try:
            instance = repo.create(**record)
            repo.save()
            return instance.id
        except (SQLAlchemyError, TypeError) as e:
            raise self._fail(collection, 'create', e)

    async def update(self, collection: str, id: int, fields: Dict[str, Any]) -> None:
        """
        Update fields of one row.

        Raises:
            StoreError: Row missing, unknown field, or database failure
        """
        repo = self._repo(collection)
        try:
            instance = repo.update(id, **fields)
            if instance is None:
                raise StoreError(collection, 'update', f"no row with id {id}")
            repo.save()
        except (SQLAlchemyError, ValueError) as e:
            raise self._fail(collection, 'update', e)

    async def delete(self, collection: str, id: int) -> None:
        """
        Delete one row.

        Raises:
            StoreError: Row missing or database failure
        """
        repo = self._repo(collection)
        try:
            deleted = repo.delete(id)
            if not deleted:
                raise StoreError(collection, 'delete', f"no row with id {id}")
            repo.save()
        except SQLAlchemyError as e:
            raise self._fail(collection, 'delete', e)
