"""
Base repository class for data access.

A repository is bound to one model and one session and turns the store
gateway's (field, op, value) filters into SQLAlchemy queries. Writes are
staged on the session; `save()` commits them.

Example:
    repo = BaseRepository(Player, db)
    rows = repo.search([('position', 'in', ['QB', 'WR'])], order_by='-age', limit=10)
"""
from abc import ABC
from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

T = TypeVar("T")

# Filter operator name -> builder of a SQLAlchemy criterion
_OPERATORS = {
    'eq': lambda column, value: column.is_(None) if value is None else column == value,
    'ne': lambda column, value: column.isnot(None) if value is None else column != value,
    'lt': lambda column, value: column < value,
    'le': lambda column, value: column <= value,
    'gt': lambda column, value: column > value,
    'ge': lambda column, value: column >= value,
    'in': lambda column, value: column.in_(list(value)),
    'contains': lambda column, value: column.ilike(f"%{value}%"),
}


class BaseRepository(Generic[T], ABC):
    """
    Filtered, ordered and paginated access to a single model.

    Attributes:
        model_type: Mapped class whose table this repository reads and writes
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    def find_by_id(self, id: int) -> Optional[T]:
        return self.db.get(self.model_type, id)

    def build_criteria(self, filters: Iterable[Tuple[str, str, Any]]) -> List[Any]:
        """
        Translate (field, op, value) triples into SQLAlchemy criteria.

        Raises:
            ValueError: Unknown field or operator
        """
        criteria = []
        for name, op, value in filters:
            column = getattr(self.model_type, name, None)
            if column is None:
                raise ValueError(f"{self.model_type.__name__} has no field '{name}'")
            builder = _OPERATORS.get(op)
            if builder is None:
                raise ValueError(f"Unsupported filter operator '{op}'")
            criteria.append(builder(column, value))
        return criteria

    def search(
        self,
        filters: Iterable[Tuple[str, str, Any]] = (),
        order_by: Optional[Sequence[str] | str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """
        Filter, order and paginate in one query.

        `order_by` takes one or more column names; a '-' prefix sorts
        descending. Primary key is always the final tie-breaker so pages are
        stable.
        """
        stmt = self.db.query(self.model_type).filter(*self.build_criteria(filters))

        if isinstance(order_by, str):
            order_by = [order_by]
        for name in order_by or []:
            column = getattr(self.model_type, name.lstrip('-'))
            stmt = stmt.order_by(desc(column) if name.startswith('-') else column)
        stmt = stmt.order_by(self.model_type.id)

        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt.all()

    def count(self, *criterion) -> int:
        """Number of rows matching the criteria."""
        stmt = self.db.query(func.count(self.model_type.id))
        if criterion:
            stmt = stmt.filter(*criterion)
        return stmt.scalar() or 0

    # ========================================================================
    # Writes (staged until save)
    # ========================================================================

    def create(self, **kwargs) -> T:
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    def update(self, id: int, **kwargs) -> Optional[T]:
        """
        Set fields on the row with this id.

        Returns:
            The row, or None when no row has that id

        Raises:
            ValueError: A field name is not a column of the model
        """
        instance = self.find_by_id(id)
        if instance is None:
            return None
        for key, value in kwargs.items():
            if not hasattr(self.model_type, key):
                raise ValueError(f"{self.model_type.__name__} has no field '{key}'")
            setattr(instance, key, value)
        return instance

    def delete(self, id: int) -> bool:
        """Stage a delete; False when no row has that id."""
        instance = self.find_by_id(id)
        if instance is None:
            return False
        self.db.delete(instance)
        return True

    def save(self) -> None:
        self.db.commit()

    def to_dict(self, instance: T) -> Dict[str, Any]:
        """Column values of an instance as a plain dict."""
        return {column.name: getattr(instance, column.name) for column in self.model_type.__table__.columns}
