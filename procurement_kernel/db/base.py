"""
Declarative base for the procurement tables.

Every model gets a uuid4 primary key stored as a 36-character string, so the
same schema runs on SQLite (tests) and PostgreSQL.  Annotated columns pick
their SQL type from ``Base.type_annotation_map``: Decimal amounts become
Numeric(38, 9) and are never stored as float.

Nothing in this module imports from models/, services/ or selectors/.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """Python UUID <-> String(36).  Accepts UUID objects or their string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, PyUUID) else PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns to a mutable record.

    Services write ``created_at`` and ``updated_at`` from their injected
    Clock; the server default only covers rows inserted outside the kernel.
    ``created_by_id`` is mandatory, ``updated_by_id`` is set by the last
    actor to change the row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


UUID = PyUUID
