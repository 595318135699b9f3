# treeshop/models/time_entry.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import TaskType
from treeshop.errors import InvalidInputError, InvalidTransitionError, require_non_negative
from treeshop.models.base import EntityMixin, enum_column


class TimeEntry(EntityMixin, Base):
    """A stopwatch over one crew task: start, optional pauses, complete."""

    __tablename__ = "time_entries"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    work_order_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    line_item_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    task_type: Mapped[TaskType] = mapped_column(enum_column(TaskType), nullable=False)
    task_category: Mapped[str] = mapped_column(String(50), nullable=False)
    task_description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    duration: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)  # hours
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paused_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    total_paused_time: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)  # hours

    start_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    assigned_employee_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    equipment_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    crew_lead_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    points_completed: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pph_achieved: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    labor_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    equipment_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_logged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __init__(
        self,
        *,
        task_type: TaskType,
        task_category: str,
        task_description: str = "",
        work_order_id: Optional[str] = None,
        line_item_id: Optional[str] = None,
        assigned_employee_ids: Optional[List[str]] = None,
        equipment_ids: Optional[List[str]] = None,
        start_location: Optional[Tuple[float, float]] = None,
        is_billable: Optional[bool] = None,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        now = now or utcnow()
        task_type = TaskType(task_type)
        start_lat, start_lon = start_location if start_location else (None, None)
        super().__init__(
            now=now,
            task_type=task_type,
            task_category=task_category,
            task_description=task_description,
            work_order_id=work_order_id,
            line_item_id=line_item_id,
            start_time=now,
            duration=0.0,
            is_paused=False,
            total_paused_time=0.0,
            start_latitude=start_lat,
            start_longitude=start_lon,
            assigned_employee_ids=list(assigned_employee_ids or []),
            equipment_ids=list(equipment_ids or []),
            is_billable=task_type.is_billable if is_billable is None else bool(is_billable),
            labor_cost=0.0,
            equipment_cost=0.0,
            is_complete=False,
            is_logged=False,
            **kwargs,
        )

    def _require_running(self, action: str) -> None:
        if self.is_complete:
            raise InvalidTransitionError(
                f"cannot {action} a completed time entry",
                meta={"time_entry_id": self.id},
            )

    def pause(self, now: Optional[datetime] = None) -> None:
        self._require_running("pause")
        if self.is_paused:
            return
        now = now or utcnow()
        self.is_paused = True
        self.paused_at = now
        self.touch(now)

    def resume(self, now: Optional[datetime] = None) -> None:
        self._require_running("resume")
        now = now or utcnow()
        if self.paused_at is not None:
            self.total_paused_time = (self.total_paused_time or 0.0) + (now - self.paused_at).total_seconds() / 3600.0
        self.is_paused = False
        self.paused_at = None
        self.touch(now)

    def complete(
        self,
        now: Optional[datetime] = None,
        location: Optional[Tuple[float, float]] = None,
        points_completed: Optional[float] = None,
    ) -> float:
        """Stop the clock; returns the worked duration in hours."""
        self._require_running("complete")
        now = now or utcnow()
        if now < self.start_time:
            raise InvalidInputError(
                "end time precedes start time",
                meta={"start_time": self.start_time.isoformat(), "end_time": now.isoformat()},
            )
        if points_completed is not None:
            self.points_completed = require_non_negative("points_completed", points_completed)
        if self.is_paused:
            self.resume(now)

        self.end_time = now
        elapsed = (now - self.start_time).total_seconds() / 3600.0
        self.duration = max(0.0, elapsed - (self.total_paused_time or 0.0))
        if location:
            self.end_latitude, self.end_longitude = location
        if self.points_completed is not None and self.duration > 0:
            self.pph_achieved = self.points_completed / self.duration
        self.is_complete = True
        self.touch(now)
        return self.duration

    def apply_costs(self, labor_cost: float, equipment_cost: float, now: Optional[datetime] = None) -> None:
        self.labor_cost = require_non_negative("labor_cost", labor_cost)
        self.equipment_cost = require_non_negative("equipment_cost", equipment_cost)
        self.touch(now)

    @property
    def total_cost(self) -> float:
        return (self.labor_cost or 0.0) + (self.equipment_cost or 0.0)
