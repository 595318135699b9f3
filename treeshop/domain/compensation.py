# treeshop/domain/compensation.py
"""
Employee compensation calculator.

wage = base * tier_multiplier(tier)
       + leadership premium   (supervisor 7.00 overrides team leader 3.00)
       + equipment premium    (E2 1.50, E3 4.00, E4 7.00)
       + driver premium       (D2 2.00, D3 3.00)
       + certifications       (crane 4.00, ISA 2.50, OSHA 2.00, hazmat 1.50; additive)

true business cost = wage * burden_multiplier(tier)

Tier and burden tables are passed separately; the defaults hold the same values.
Lookups for a tier outside the table fall back to a fixed default unless
`strict=True` (entity mutators always look up strictly):
  - tier multiplier -> the tier-1 factor (1.6)
  - burden multiplier -> 1.7
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from treeshop.errors import InvalidInputError, require_int_in_range, require_non_negative

MIN_TIER, MAX_TIER = 1, 5

DEFAULT_TIER_MULTIPLIERS: Dict[int, float] = {1: 1.6, 2: 1.7, 3: 1.8, 4: 2.0, 5: 2.2}
DEFAULT_BURDEN_MULTIPLIERS: Dict[int, float] = {1: 1.6, 2: 1.7, 3: 1.8, 4: 2.0, 5: 2.2}

TIER_MULTIPLIER_FALLBACK = DEFAULT_TIER_MULTIPLIERS[1]
BURDEN_MULTIPLIER_FALLBACK = 1.7

SUPERVISOR_PREMIUM = 7.00
TEAM_LEADER_PREMIUM = 3.00

EQUIPMENT_PREMIUMS: Dict[int, float] = {1: 0.0, 2: 1.50, 3: 4.00, 4: 7.00}
DRIVER_PREMIUMS: Dict[int, float] = {1: 0.0, 2: 2.00, 3: 3.00}

CRANE_PREMIUM = 4.00
ISA_PREMIUM = 2.50
OSHA_PREMIUM = 2.00
HAZMAT_PREMIUM = 1.50


@dataclass(frozen=True)
class WageBreakdown:
    base: float
    tier_multiplier: float
    tiered_base: float
    leadership: float
    equipment: float
    driver: float
    certifications: float

    @property
    def total(self) -> float:
        return self.tiered_base + self.leadership + self.equipment + self.driver + self.certifications


def _lookup(table: Mapping[int, float], tier: int, fallback: float, strict: bool, label: str) -> float:
    if tier in table:
        return float(table[tier])
    if strict:
        raise InvalidInputError(
            f"no {label} defined for tier {tier}",
            meta={"tier": tier, "known_tiers": sorted(table)},
        )
    return fallback


def tier_multiplier(tier: int, table: Optional[Mapping[int, float]] = None, strict: bool = False) -> float:
    return _lookup(table or DEFAULT_TIER_MULTIPLIERS, tier, TIER_MULTIPLIER_FALLBACK, strict, "tier multiplier")


def burden_multiplier(tier: int, table: Optional[Mapping[int, float]] = None, strict: bool = False) -> float:
    return _lookup(table or DEFAULT_BURDEN_MULTIPLIERS, tier, BURDEN_MULTIPLIER_FALLBACK, strict, "burden multiplier")


def wage_breakdown(
    base: float,
    tier: int,
    has_team_leader: bool = False,
    has_supervisor: bool = False,
    equipment_level: int = 1,
    driver_class: int = 1,
    has_crane: bool = False,
    has_isa: bool = False,
    has_osha: bool = False,
    has_hazmat: bool = False,
    tier_table: Optional[Mapping[int, float]] = None,
    strict: bool = False,
) -> WageBreakdown:
    base = require_non_negative("base_hourly_rate", base)
    equipment_level = require_int_in_range("equipment_level", equipment_level, 1, 4)
    driver_class = require_int_in_range("driver_class", driver_class, 1, 3)

    multiplier = tier_multiplier(tier, tier_table, strict=strict)

    # only one leadership premium ever applies
    if has_supervisor:
        leadership = SUPERVISOR_PREMIUM
    elif has_team_leader:
        leadership = TEAM_LEADER_PREMIUM
    else:
        leadership = 0.0

    certifications = 0.0
    if has_crane:
        certifications += CRANE_PREMIUM
    if has_isa:
        certifications += ISA_PREMIUM
    if has_osha:
        certifications += OSHA_PREMIUM
    if has_hazmat:
        certifications += HAZMAT_PREMIUM

    return WageBreakdown(
        base=base,
        tier_multiplier=multiplier,
        tiered_base=base * multiplier,
        leadership=leadership,
        equipment=EQUIPMENT_PREMIUMS[equipment_level],
        driver=DRIVER_PREMIUMS[driver_class],
        certifications=certifications,
    )


def calculate_wage(base: float, tier: int, **premiums) -> float:
    """Total hourly wage; keyword arguments as in `wage_breakdown`."""
    return wage_breakdown(base, tier, **premiums).total


def true_business_cost(
    hourly_wage: float,
    tier: int,
    burden_table: Optional[Mapping[int, float]] = None,
    strict: bool = False,
) -> float:
    return require_non_negative("hourly_wage", hourly_wage) * burden_multiplier(tier, burden_table, strict=strict)
