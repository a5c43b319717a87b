"""
Generic CRUD helpers shared by the integration stores.

These functions work with any SQLAlchemy model. When `user_id` is given and
the model has a `user_id` column, every read and write is scoped to that
owner so one user can never see or change another user's records.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from ..exceptions import ErrorCode, RepositoryError, not_found
from .logger import get_logger

T = TypeVar("T")


def _scoped_query(session: Session, model_class: Type[T], user_id: Optional[str]):
    query = session.query(model_class)
    if user_id is not None and hasattr(model_class, "user_id"):
        query = query.filter(model_class.user_id == user_id)  # type: ignore[attr-defined]
    return query


def create_record(
    session: Session, model_class: Type[T], data: Dict[str, Any], user_id: Optional[str] = None
) -> T:
    """
    Generic create operation for any model.

    Args:
        session: Database session
        model_class: SQLAlchemy model class
        data: Column values
        user_id: Optional owner to set on the record

    Returns:
        Created record instance

    Raises:
        RepositoryError: If creation fails
    """
    logger = get_logger()

    try:
        if user_id and hasattr(model_class, "user_id") and "user_id" not in data:
            data["user_id"] = user_id

        now = datetime.now(timezone.utc)
        if hasattr(model_class, "created_at"):
            data.setdefault("created_at", now)
        if hasattr(model_class, "updated_at"):
            data.setdefault("updated_at", now)

        record = model_class(**data)
        session.add(record)
        session.commit()

        logger.info(
            f"Created {model_class.__name__}",
            extra={
                "model": model_class.__name__,
                "record_id": getattr(record, "id", None),
                "user_id": user_id,
            },
        )

        return record

    except Exception as e:
        session.rollback()
        raise RepositoryError(
            f"Failed to create {model_class.__name__}: {e}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
            model=model_class.__name__,
            user_id=user_id,
        ) from e


def get_record(
    session: Session, model_class: Type[T], filters: Dict[str, Any], user_id: Optional[str] = None
) -> Optional[T]:
    """
    Generic get operation for any model.

    Filters whose value is None are ignored.

    Returns:
        First matching record or None
    """
    query = _scoped_query(session, model_class, user_id)

    for key, value in filters.items():
        if hasattr(model_class, key) and value is not None:
            query = query.filter(getattr(model_class, key) == value)

    return query.first()


def get_record_by_id(
    session: Session, model_class: Type[T], record_id: str, user_id: Optional[str] = None
) -> Optional[T]:
    """Generic get by ID operation."""
    return get_record(session, model_class, {"id": record_id}, user_id)


def list_records(
    session: Session,
    model_class: Type[T],
    filters: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    order_by: Optional[str] = None,
) -> List[T]:
    """
    Generic list operation.

    Args:
        session: Database session
        model_class: SQLAlchemy model class
        filters: Optional equality filters
        user_id: Optional owner scope
        order_by: Optional column name to sort by ascending

    Returns:
        Matching records
    """
    query = _scoped_query(session, model_class, user_id)

    for key, value in (filters or {}).items():
        if hasattr(model_class, key) and value is not None:
            query = query.filter(getattr(model_class, key) == value)

    if order_by and hasattr(model_class, order_by):
        query = query.order_by(getattr(model_class, order_by))

    return query.all()


def update_record(
    session: Session,
    model_class: Type[T],
    record_id: str,
    data: Dict[str, Any],
    user_id: Optional[str] = None,
) -> T:
    """
    Generic update operation for any model.

    Keys with a None value are applied, so callers can clear nullable
    columns; pass only the keys you mean to change.

    Raises:
        RepositoryError: 404 if the record does not exist, 500 if the update fails
    """
    logger = get_logger()

    record = get_record_by_id(session, model_class, record_id, user_id)
    if not record:
        raise not_found(model_class.__name__, record_id=record_id, user_id=user_id)

    try:
        for key, value in data.items():
            if hasattr(record, key):
                setattr(record, key, value)

        if hasattr(record, "updated_at"):
            record.updated_at = datetime.now(timezone.utc)

        session.commit()

        logger.info(
            f"Updated {model_class.__name__}",
            extra={"model": model_class.__name__, "record_id": record_id, "user_id": user_id},
        )

        return record

    except Exception as e:
        session.rollback()
        raise RepositoryError(
            f"Failed to update {model_class.__name__}: {e}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
            model=model_class.__name__,
            record_id=record_id,
        ) from e


def delete_record(
    session: Session, model_class: Type[T], record_id: str, user_id: Optional[str] = None
) -> bool:
    """
    Generic delete operation for any model.

    Returns:
        True if deleted, False if not found

    Raises:
        RepositoryError: If deletion fails
    """
    logger = get_logger()

    record = get_record_by_id(session, model_class, record_id, user_id)
    if not record:
        return False

    try:
        session.delete(record)
        session.commit()

        logger.info(
            f"Deleted {model_class.__name__}",
            extra={"model": model_class.__name__, "record_id": record_id, "user_id": user_id},
        )
        return True

    except Exception as e:
        session.rollback()
        raise RepositoryError(
            f"Failed to delete {model_class.__name__}: {e}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
            model=model_class.__name__,
            record_id=record_id,
        ) from e


def upsert_record(
    session: Session,
    model_class: Type[T],
    lookup: Dict[str, Any],
    data: Dict[str, Any],
    user_id: Optional[str] = None,
) -> T:
    """
    Update the record matching `lookup`, or create it.

    Args:
        lookup: Natural-key columns identifying the record
        data: Columns to write on create or update

    Returns:
        The created or updated record
    """
    existing = get_record(session, model_class, lookup, user_id)
    if existing is not None:
        return update_record(session, model_class, existing.id, data, user_id)  # type: ignore[attr-defined]
    return create_record(session, model_class, {**lookup, **data}, user_id)

