# treeshop/domain/equipment_costs.py
"""
Equipment true-cost model ("6 inputs" -> hourly cost).

  fuel            = gph * fuel_price
  depreciation    = purchase_price / (depreciation_years * annual_hours)
  maintenance     = purchase_price * maintenance_pct / annual_hours
  insurance_fixed = (insurance + registration + storage) / annual_hours
  total           = fuel + depreciation + maintenance + insurance_fixed

The minimum billing rate is the break-even hourly rate, i.e. `total`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Union

from treeshop.errors import (
    InvalidInputError,
    require_non_negative,
    require_positive,
)

DEFAULT_MAINTENANCE_THRESHOLD = 12.0
DEFAULT_MINIMUM_ANNUAL_HOURS = 1000.0
DEFAULT_UNDERUTILIZATION_RATIO = 0.75

# Trigger codes (avoid string typos)
TRIGGER_MAINTENANCE_COST = "MAINTENANCE_COST"
TRIGGER_LOW_UTILIZATION = "LOW_UTILIZATION"
TRIGGER_AGE = "AGE"


@dataclass(frozen=True)
class HourlyCostBreakdown:
    fuel: float
    depreciation: float
    maintenance: float
    insurance_fixed: float
    total: float

    @property
    def minimum_billing_rate(self) -> float:
        return self.total


@dataclass(frozen=True)
class ReplacementTrigger:
    code: str
    note: str


def calculate_costs(
    purchase_price: float,
    annual_hours: float,
    fuel_gph: float,
    fuel_price: float,
    depreciation_years: float,
    maintenance_pct: float,
    insurance_annual: float = 0.0,
    registration_annual: float = 0.0,
    storage_annual: float = 0.0,
) -> HourlyCostBreakdown:
    purchase_price = require_non_negative("purchase_price", purchase_price)
    annual_hours = require_positive("annual_hours", annual_hours)
    fuel_gph = require_non_negative("fuel_gph", fuel_gph)
    fuel_price = require_non_negative("fuel_price", fuel_price)
    depreciation_years = require_positive("depreciation_years", depreciation_years)
    maintenance_pct = require_non_negative("maintenance_pct", maintenance_pct)
    insurance_annual = require_non_negative("insurance_annual", insurance_annual)
    registration_annual = require_non_negative("registration_annual", registration_annual)
    storage_annual = require_non_negative("storage_annual", storage_annual)

    fuel = fuel_gph * fuel_price
    depreciation = purchase_price / (depreciation_years * annual_hours)
    maintenance = (purchase_price * maintenance_pct) / annual_hours
    insurance_fixed = (insurance_annual + registration_annual + storage_annual) / annual_hours
    total = fuel + depreciation + maintenance + insurance_fixed

    return HourlyCostBreakdown(
        fuel=fuel,
        depreciation=depreciation,
        maintenance=maintenance,
        insurance_fixed=insurance_fixed,
        total=total,
    )


def years_between(start: Union[date, datetime], end: Union[date, datetime]) -> int:
    """Whole calendar years elapsed from start to end (0 if end precedes start)."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return max(0, years)


def evaluate_replacement_triggers(
    maintenance_cost_per_hour: float,
    hours_used_this_year: float,
    years_since_purchase: int,
    depreciation_years: int,
    maintenance_threshold: float = DEFAULT_MAINTENANCE_THRESHOLD,
    minimum_annual_hours: float = DEFAULT_MINIMUM_ANNUAL_HOURS,
) -> List[ReplacementTrigger]:
    """
    Every trigger is evaluated independently; all that fire are returned,
    in a fixed order (maintenance, utilization, age).
    """
    triggers: List[ReplacementTrigger] = []

    if maintenance_cost_per_hour > maintenance_threshold:
        triggers.append(
            ReplacementTrigger(
                TRIGGER_MAINTENANCE_COST,
                f"Maintenance cost exceeds ${maintenance_threshold:,.2f}/hour threshold",
            )
        )

    if 0 < hours_used_this_year < minimum_annual_hours:
        triggers.append(
            ReplacementTrigger(
                TRIGGER_LOW_UTILIZATION,
                f"Utilization below {minimum_annual_hours:,.0f} hours minimum",
            )
        )

    if years_since_purchase > depreciation_years:
        triggers.append(
            ReplacementTrigger(TRIGGER_AGE, "Equipment age exceeds depreciation period")
        )

    return triggers


def utilization_rate(hours_used: float, annual_hours: float) -> float:
    annual_hours = require_positive("annual_hours", annual_hours)
    return require_non_negative("hours_used", hours_used) / annual_hours


def is_underutilized(
    hours_used: float,
    annual_hours: float,
    ratio: float = DEFAULT_UNDERUTILIZATION_RATIO,
) -> bool:
    if ratio < 0 or ratio > 1:
        raise InvalidInputError("ratio must be between 0 and 1", meta={"ratio": ratio})
    return hours_used < annual_hours * ratio
