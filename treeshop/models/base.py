# treeshop/models/base.py
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Type

from sqlalchemy import Enum as SAEnum
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.db import UTCDateTime, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


def short_code(prefix: str, now: datetime) -> str:
    """e.g. PROP-20251001-3FA2"""
    return f"{prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:4].upper()}"


def enum_column(enum_cls: Type[Enum], length: int = 32) -> SAEnum:
    """
    Closed enum stored as its value string.
    An unknown stored value fails on load instead of silently mapping to a default.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        validate_strings=True,
        length=length,
        values_callable=lambda e: [m.value for m in e],
    )


class EntityMixin:
    """Identity + audit timestamps shared by every record."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    def __init__(self, now: Optional[datetime] = None, **kwargs):
        now = now or utcnow()
        kwargs.setdefault("id", new_id())
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)
        super().__init__(**kwargs)

    def touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or utcnow()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id}>"
