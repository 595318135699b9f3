# treeshop/models/equipment.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.config import get_settings
from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain import equipment_costs
from treeshop.domain.enums import EquipmentStatus, EquipmentType
from treeshop.errors import InvalidInputError, require_non_negative, require_positive
from treeshop.models.base import EntityMixin, enum_column

COST_INPUT_FIELDS = (
    "purchase_price",
    "annual_usage_hours",
    "fuel_consumption_gph",
    "fuel_price_per_gallon",
    "depreciation_years",
    "annual_maintenance_pct",
    "annual_insurance_cost",
    "annual_registration_cost",
    "annual_storage_cost",
)


class Equipment(EntityMixin, Base):
    __tablename__ = "equipment"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    equipment_name: Mapped[str] = mapped_column(String(200), nullable=False)
    equipment_type: Mapped[EquipmentType] = mapped_column(enum_column(EquipmentType), nullable=False)
    make: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    serial_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # cost inputs
    purchase_price: Mapped[float] = mapped_column(Float, nullable=False)
    purchase_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    annual_usage_hours: Mapped[float] = mapped_column(Float, nullable=False)
    fuel_consumption_gph: Mapped[float] = mapped_column(Float, nullable=False)
    fuel_price_per_gallon: Mapped[float] = mapped_column(Float, nullable=False)
    depreciation_years: Mapped[int] = mapped_column(Integer, nullable=False)
    annual_maintenance_pct: Mapped[float] = mapped_column(Float, nullable=False)
    annual_insurance_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    annual_registration_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    annual_storage_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # cached outputs (written only by _apply_costs)
    fuel_cost_per_hour: Mapped[float] = mapped_column(Float, nullable=False)
    depreciation_cost_per_hour: Mapped[float] = mapped_column(Float, nullable=False)
    maintenance_cost_per_hour: Mapped[float] = mapped_column(Float, nullable=False)
    insurance_fixed_cost_per_hour: Mapped[float] = mapped_column(Float, nullable=False)
    total_hourly_cost: Mapped[float] = mapped_column(Float, nullable=False)
    minimum_billing_rate: Mapped[float] = mapped_column(Float, nullable=False)

    # usage
    total_hours_used: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    hours_used_this_year: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    utilization_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    total_revenue_generated: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # maintenance
    maintenance_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    last_maintenance_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    maintenance_interval_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    status: Mapped[EquipmentStatus] = mapped_column(enum_column(EquipmentStatus), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # replacement review
    should_consider_replacement: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    replacement_trigger_notes: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    def __init__(
        self,
        *,
        equipment_name: str,
        equipment_type: EquipmentType,
        purchase_price: float,
        purchase_date: datetime,
        annual_usage_hours: float,
        fuel_consumption_gph: float,
        fuel_price_per_gallon: float,
        depreciation_years: Optional[int] = None,
        annual_maintenance_pct: Optional[float] = None,
        annual_insurance_cost: float = 0.0,
        annual_registration_cost: float = 0.0,
        annual_storage_cost: float = 0.0,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        s = get_settings()
        inputs = {
            "purchase_price": purchase_price,
            "annual_usage_hours": annual_usage_hours,
            "fuel_consumption_gph": fuel_consumption_gph,
            "fuel_price_per_gallon": fuel_price_per_gallon,
            "depreciation_years": (
                s.equipment_default_depreciation_years if depreciation_years is None else depreciation_years
            ),
            "annual_maintenance_pct": (
                s.equipment_default_maintenance_pct if annual_maintenance_pct is None else annual_maintenance_pct
            ),
            "annual_insurance_cost": annual_insurance_cost,
            "annual_registration_cost": annual_registration_cost,
            "annual_storage_cost": annual_storage_cost,
        }
        kwargs.setdefault("status", EquipmentStatus.ACTIVE)
        super().__init__(
            now=now,
            equipment_name=equipment_name,
            equipment_type=EquipmentType(equipment_type),
            purchase_date=purchase_date,
            total_hours_used=0.0,
            hours_used_this_year=0.0,
            utilization_rate=0.0,
            total_revenue_generated=0.0,
            maintenance_history=[],
            is_available=True,
            should_consider_replacement=False,
            replacement_trigger_notes=[],
            **kwargs,
        )
        self._apply_costs(inputs, now)

    # ----------------------------------------------------
    # Cost model
    # ----------------------------------------------------
    def _apply_costs(self, inputs: Dict[str, Any], now: Optional[datetime]) -> None:
        if isinstance(inputs["depreciation_years"], bool) or not isinstance(inputs["depreciation_years"], int):
            raise InvalidInputError(
                "depreciation_years must be a whole number of years",
                meta={"value": repr(inputs["depreciation_years"])},
            )
        costs = equipment_costs.calculate_costs(
            purchase_price=inputs["purchase_price"],
            annual_hours=inputs["annual_usage_hours"],
            fuel_gph=inputs["fuel_consumption_gph"],
            fuel_price=inputs["fuel_price_per_gallon"],
            depreciation_years=inputs["depreciation_years"],
            maintenance_pct=inputs["annual_maintenance_pct"],
            insurance_annual=inputs["annual_insurance_cost"],
            registration_annual=inputs["annual_registration_cost"],
            storage_annual=inputs["annual_storage_cost"],
        )

        for name in COST_INPUT_FIELDS:
            value = inputs[name]
            setattr(self, name, value if name == "depreciation_years" else float(value))
        self.fuel_cost_per_hour = costs.fuel
        self.depreciation_cost_per_hour = costs.depreciation
        self.maintenance_cost_per_hour = costs.maintenance
        self.insurance_fixed_cost_per_hour = costs.insurance_fixed
        self.total_hourly_cost = costs.total
        self.minimum_billing_rate = costs.minimum_billing_rate
        self.utilization_rate = equipment_costs.utilization_rate(
            self.hours_used_this_year or 0.0, self.annual_usage_hours
        )
        self.touch(now)
        self.check_replacement_triggers(now=now)

    def update_cost_inputs(self, now: Optional[datetime] = None, **changes) -> float:
        """Change any of the cost inputs; returns the new total hourly cost."""
        unknown = sorted(set(changes) - set(COST_INPUT_FIELDS))
        if unknown:
            raise InvalidInputError(
                "unknown cost input fields",
                meta={"fields": unknown, "allowed": list(COST_INPUT_FIELDS)},
            )
        inputs = {name: getattr(self, name) for name in COST_INPUT_FIELDS}
        inputs.update(changes)
        self._apply_costs(inputs, now)
        return self.total_hourly_cost

    def check_replacement_triggers(self, now: Optional[datetime] = None) -> List[str]:
        s = get_settings()
        triggers = equipment_costs.evaluate_replacement_triggers(
            maintenance_cost_per_hour=self.maintenance_cost_per_hour,
            hours_used_this_year=self.hours_used_this_year or 0.0,
            years_since_purchase=self.years_since_purchase(now),
            depreciation_years=self.depreciation_years,
            maintenance_threshold=s.maintenance_replacement_threshold,
            minimum_annual_hours=s.minimum_annual_equipment_hours,
        )
        self.replacement_trigger_notes = [t.note for t in triggers]
        self.should_consider_replacement = bool(triggers)
        return self.replacement_trigger_notes

    # ----------------------------------------------------
    # Usage & maintenance
    # ----------------------------------------------------
    def log_usage(
        self,
        hours: float,
        used_at: Optional[datetime] = None,
        revenue: float = 0.0,
        now: Optional[datetime] = None,
    ) -> None:
        hours = require_non_negative("hours", hours)
        revenue = require_non_negative("revenue", revenue)
        now = now or utcnow()

        self.total_hours_used = (self.total_hours_used or 0.0) + hours
        self.hours_used_this_year = (self.hours_used_this_year or 0.0) + hours
        self.total_revenue_generated = (self.total_revenue_generated or 0.0) + revenue
        self.last_used_at = used_at or now
        self.utilization_rate = equipment_costs.utilization_rate(self.hours_used_this_year, self.annual_usage_hours)
        self.touch(now)
        self.check_replacement_triggers(now=now)

    def add_maintenance(
        self,
        performed_at: datetime,
        cost: float,
        description: str,
        next_due_hours: Optional[float] = None,
        performed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        cost = require_non_negative("cost", cost)
        if next_due_hours is not None:
            next_due_hours = require_positive("next_due_hours", next_due_hours)

        record = {
            "date": performed_at.isoformat(),
            "cost": cost,
            "description": description,
            "performed_by": performed_by,
        }
        self.maintenance_history = list(self.maintenance_history or []) + [record]
        self.last_maintenance_at = performed_at
        if next_due_hours is not None:
            self.maintenance_interval_hours = next_due_hours
        self.touch(now)

    def reset_annual_usage(self, now: Optional[datetime] = None) -> None:
        self.hours_used_this_year = 0.0
        self.utilization_rate = 0.0
        self.touch(now)
        self.check_replacement_triggers(now=now)

    def set_status(self, status: EquipmentStatus, now: Optional[datetime] = None) -> None:
        self.status = EquipmentStatus(status)
        self.is_available = self.status is EquipmentStatus.ACTIVE
        self.touch(now)

    # ----------------------------------------------------
    # Derived
    # ----------------------------------------------------
    def years_since_purchase(self, now: Optional[datetime] = None) -> int:
        return equipment_costs.years_between(self.purchase_date, now or utcnow())

    @property
    def is_underutilized(self) -> bool:
        return equipment_costs.is_underutilized(
            self.hours_used_this_year or 0.0,
            self.annual_usage_hours,
            get_settings().underutilization_ratio,
        )

    @property
    def daily_revenue_requirement(self) -> float:
        return self.minimum_billing_rate * self.annual_usage_hours / get_settings().work_days_per_year

    @property
    def annual_revenue_target(self) -> float:
        return self.minimum_billing_rate * self.annual_usage_hours

    @property
    def total_maintenance_cost(self) -> float:
        return sum(r.get("cost", 0.0) for r in self.maintenance_history or [])
