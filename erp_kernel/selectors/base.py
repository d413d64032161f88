"""
Module: erp_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors, plus the
    page envelope returned by paginated queries.  Selectors form the "Q" side
    of the CQRS-lite split: approval screens and inboxes read through them,
    never through repositories.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ value types.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT raw ORM
      model instances.
    - Session ownership: the caller owns the session and its transaction.

Failure modes:
    - Returns None or an empty page when nothing matches (never raises on
      absence of data).
    - ValueError on a non-positive limit or negative offset.
"""

from abc import ABC
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from erp_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
ItemType = TypeVar("ItemType")

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class PageMeta:
    total: int
    limit: int
    offset: int
    has_next: bool
    has_previous: bool


@dataclass(frozen=True)
class Page(Generic[ItemType]):
    items: tuple[ItemType, ...]
    meta: PageMeta


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        """
        Initialize the selector.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    def _paginate(self, stmt: Select, limit: int, offset: int):
        """Run ``stmt`` for one page; return (rows, PageMeta)."""
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")

        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(stmt.limit(limit).offset(offset)).all()
        meta = PageMeta(
            total=total,
            limit=limit,
            offset=offset,
            has_next=offset + len(rows) < total,
            has_previous=offset > 0,
        )
        return rows, meta
