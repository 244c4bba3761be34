"""Declarative base, shared columns and constraint helpers."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, MetaData, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all payout engine tables.

    UUID keys map to native UUID columns and every datetime is stored
    timezone-aware (UTC).
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map = {
        UUID: Uuid(as_uuid=True),
        datetime: DateTime(timezone=True),
    }


def one_of(
    column: str,
    values: type[Enum] | Iterable[str],
    name: str,
    *,
    nullable: bool = False,
) -> CheckConstraint:
    """CHECK constraint restricting a string column to a closed set.

    Accepts a str Enum so the database constraint and the Python enum
    can never drift apart.
    """
    if isinstance(values, type) and issubclass(values, Enum):
        allowed = [member.value for member in values]
    else:
        allowed = list(values)
    listed = ", ".join(f"'{value}'" for value in allowed)
    condition = f"{column} IN ({listed})"
    if nullable:
        condition = f"{column} IS NULL OR {condition}"
    return CheckConstraint(condition, name=name)


class TimestampMixin:
    """Adds a server-set created_at."""

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )


class UpdatedAtMixin(TimestampMixin):
    """Rows that change status over their lifetime."""

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
