# treeshop/models/employee.py
from __future__ import annotations

from datetime import datetime
from typing import List, Mapping, Optional

from sqlalchemy import JSON, Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.config import get_settings
from treeshop.db import Base, UTCDateTime
from treeshop.domain import compensation
from treeshop.domain.enums import CareerTrack, EmploymentStatus
from treeshop.errors import InvalidInputError, require_int_in_range, require_non_negative
from treeshop.models.base import EntityMixin, enum_column

# inputs of the wage calculation, in the order the calculator takes them
COMPENSATION_FIELDS = (
    "base_hourly_rate",
    "tier",
    "has_team_leader",
    "has_supervisor",
    "equipment_level",
    "driver_class",
    "has_crane_cert",
    "has_isa_cert",
    "has_osha_cert",
    "has_hazmat_cert",
)


class Employee(EntityMixin, Base):
    __tablename__ = "employees"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    hire_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    employment_status: Mapped[EmploymentStatus] = mapped_column(enum_column(EmploymentStatus), nullable=False)
    termination_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    primary_track: Mapped[CareerTrack] = mapped_column(enum_column(CareerTrack, length=8), nullable=False)
    tier: Mapped[int] = mapped_column(Integer, nullable=False)
    cross_training_tracks: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # compensation inputs
    base_hourly_rate: Mapped[float] = mapped_column(Float, nullable=False)
    has_team_leader: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_supervisor: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_manager: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_director: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    equipment_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    driver_class: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    has_crane_cert: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_isa_cert: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_osha_cert: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_hazmat_cert: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # cached outputs (written only by _apply_compensation)
    total_hourly_wage: Mapped[float] = mapped_column(Float, nullable=False)
    labor_burden_multiplier: Mapped[float] = mapped_column(Float, nullable=False)
    true_business_cost: Mapped[float] = mapped_column(Float, nullable=False)

    # performance
    jobs_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_hours_worked: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_points_completed: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    average_pph: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    def __init__(
        self,
        *,
        first_name: str,
        last_name: str,
        phone_number: str,
        hire_date: datetime,
        primary_track: CareerTrack,
        base_hourly_rate: float,
        tier: int = 1,
        now: Optional[datetime] = None,
        tier_table: Optional[Mapping[int, float]] = None,
        burden_table: Optional[Mapping[int, float]] = None,
        **kwargs,
    ):
        inputs = {name: kwargs.pop(name) for name in COMPENSATION_FIELDS if name in kwargs}
        inputs.update(base_hourly_rate=base_hourly_rate, tier=tier)
        for name, default in (
            ("has_team_leader", False),
            ("has_supervisor", False),
            ("equipment_level", 1),
            ("driver_class", 1),
            ("has_crane_cert", False),
            ("has_isa_cert", False),
            ("has_osha_cert", False),
            ("has_hazmat_cert", False),
        ):
            inputs.setdefault(name, default)

        kwargs.setdefault("employment_status", EmploymentStatus.ACTIVE)
        super().__init__(
            now=now,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            hire_date=hire_date,
            primary_track=CareerTrack(primary_track),
            cross_training_tracks=[],
            is_manager=kwargs.pop("is_manager", False),
            is_director=kwargs.pop("is_director", False),
            jobs_completed=0,
            total_hours_worked=0.0,
            total_points_completed=0.0,
            average_pph=0.0,
            **kwargs,
        )
        self._apply_compensation(inputs, tier_table, burden_table, now)

    # ----------------------------------------------------
    # Compensation
    # ----------------------------------------------------
    def _apply_compensation(self, inputs, tier_table, burden_table, now) -> None:
        s = get_settings()
        tier_table = tier_table or s.tier_multipliers
        burden_table = burden_table or s.burden_multipliers

        tier = require_int_in_range("tier", inputs["tier"], compensation.MIN_TIER, compensation.MAX_TIER)
        wage = compensation.calculate_wage(
            inputs["base_hourly_rate"],
            tier,
            has_team_leader=bool(inputs["has_team_leader"]),
            has_supervisor=bool(inputs["has_supervisor"]),
            equipment_level=inputs["equipment_level"],
            driver_class=inputs["driver_class"],
            has_crane=bool(inputs["has_crane_cert"]),
            has_isa=bool(inputs["has_isa_cert"]),
            has_osha=bool(inputs["has_osha_cert"]),
            has_hazmat=bool(inputs["has_hazmat_cert"]),
            tier_table=tier_table,
            strict=True,
        )
        burden = compensation.burden_multiplier(tier, burden_table, strict=True)

        # everything validated; write inputs and caches together
        for name in COMPENSATION_FIELDS:
            value = inputs[name]
            setattr(self, name, bool(value) if name.startswith("has_") else value)
        self.base_hourly_rate = float(inputs["base_hourly_rate"])
        self.total_hourly_wage = wage
        self.labor_burden_multiplier = burden
        self.true_business_cost = wage * burden
        self.touch(now)

    def update_compensation(
        self,
        now: Optional[datetime] = None,
        tier_table: Optional[Mapping[int, float]] = None,
        burden_table: Optional[Mapping[int, float]] = None,
        **changes,
    ) -> float:
        """Change any wage input; returns the recomputed hourly wage."""
        unknown = sorted(set(changes) - set(COMPENSATION_FIELDS))
        if unknown:
            raise InvalidInputError(
                "unknown compensation fields",
                meta={"fields": unknown, "allowed": list(COMPENSATION_FIELDS)},
            )
        inputs = {name: getattr(self, name) for name in COMPENSATION_FIELDS}
        inputs.update(changes)
        self._apply_compensation(inputs, tier_table, burden_table, now)
        return self.total_hourly_wage

    # ----------------------------------------------------
    # Performance
    # ----------------------------------------------------
    def record_hours(
        self,
        hours: float,
        points: float = 0.0,
        job_completed: bool = False,
        now: Optional[datetime] = None,
    ) -> None:
        hours = require_non_negative("hours", hours)
        points = require_non_negative("points", points)
        self.total_hours_worked = (self.total_hours_worked or 0.0) + hours
        self.total_points_completed = (self.total_points_completed or 0.0) + points
        if self.total_hours_worked > 0:
            self.average_pph = self.total_points_completed / self.total_hours_worked
        if job_completed:
            self.jobs_completed = (self.jobs_completed or 0) + 1
        self.touch(now)

    def add_cross_training(self, track: CareerTrack, tier: int, now: Optional[datetime] = None) -> None:
        tier = require_int_in_range("tier", tier, compensation.MIN_TIER, compensation.MAX_TIER)
        tag = f"{CareerTrack(track).value}{tier}"
        if tag not in (self.cross_training_tracks or []):
            self.cross_training_tracks = list(self.cross_training_tracks or []) + [tag]
        self.touch(now)

    def terminate(self, when: datetime, now: Optional[datetime] = None) -> None:
        self.employment_status = EmploymentStatus.TERMINATED
        self.termination_date = when
        self.touch(now)

    # ----------------------------------------------------
    # Derived
    # ----------------------------------------------------
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def employee_code(self) -> str:
        code = f"{self.primary_track.value}{self.tier}"
        if self.has_supervisor:
            code += "+S"
        elif self.has_team_leader:
            code += "+L"
        if self.is_manager:
            code += "+M"
        if self.is_director:
            code += "+D"
        if self.equipment_level > 1:
            code += f"+E{self.equipment_level}"
        if self.driver_class > 1:
            code += f"+D{self.driver_class}"
        for flag, tag in (
            (self.has_crane_cert, "CRA"),
            (self.has_isa_cert, "ISA"),
            (self.has_osha_cert, "OSH"),
            (self.has_hazmat_cert, "HAZ"),
        ):
            if flag:
                code += f"+{tag}"
        if self.cross_training_tracks:
            code += " / " + "+".join(f"X-{t}" for t in self.cross_training_tracks)
        return code

    @property
    def is_active(self) -> bool:
        return self.employment_status is EmploymentStatus.ACTIVE
