# treeshop/services/repository.py
"""
Entity CRUD over a SQLAlchemy session.

Every write goes through `commit()`, which turns an optimistic-lock
failure (row changed by someone else since it was loaded) into a
ConcurrencyConflictError.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from treeshop.errors import ConcurrencyConflictError, InvalidInputError, NotFoundError
from treeshop.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def commit(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("concurrency_conflict", error=str(exc))
        raise ConcurrencyConflictError(
            "record was modified by another writer; reload and retry",
        ) from exc
    except Exception:
        db.rollback()
        raise


def create(db: Session, entity: T) -> T:
    db.add(entity)
    commit(db)
    db.refresh(entity)
    logger.debug("entity_created", entity=type(entity).__name__, entity_id=getattr(entity, "id", None))
    return entity


def get(db: Session, model: Type[T], entity_id: str) -> T:
    entity = db.get(model, entity_id)
    if entity is None:
        raise NotFoundError(
            f"{model.__name__} not found",
            meta={"entity": model.__name__, "id": entity_id},
        )
    return entity


def list_where(
    db: Session,
    model: Type[T],
    *criteria: Any,
    order_by: Any = None,
    limit: Optional[int] = None,
) -> List[T]:
    q = db.query(model)
    if criteria:
        q = q.filter(*criteria)
    if order_by is not None:
        q = q.order_by(order_by)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def check_version(entity: Any, expected_version: Optional[int]) -> None:
    """Reject a write based on a stale read (client-supplied version / etag)."""
    if expected_version is None:
        return
    if getattr(entity, "version_id", None) != expected_version:
        raise ConcurrencyConflictError(
            "version mismatch",
            meta={
                "entity": type(entity).__name__,
                "id": getattr(entity, "id", None),
                "expected_version": expected_version,
                "current_version": getattr(entity, "version_id", None),
            },
        )


def update(
    db: Session,
    entity: T,
    mutator: Callable[[T], Any],
    expected_version: Optional[int] = None,
) -> T:
    """
    Run a mutator as one unit of work. If the mutator raises, the session
    is rolled back and the stored entity is unchanged.
    """
    check_version(entity, expected_version)
    try:
        mutator(entity)
    except Exception:
        db.rollback()
        raise
    db.add(entity)
    commit(db)
    db.refresh(entity)
    return entity


def archive(
    db: Session,
    entity: T,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> T:
    if not hasattr(entity, "archive"):
        raise InvalidInputError(
            f"{type(entity).__name__} does not support archiving",
            meta={"entity": type(entity).__name__},
        )
    return update(db, entity, lambda e: e.archive(reason=reason, now=now), expected_version=expected_version)
