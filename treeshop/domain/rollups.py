# treeshop/domain/rollups.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from treeshop.errors import require_non_negative


class CostedLineItem(Protocol):
    total_price: float
    labor_cost: float
    equipment_cost: float
    material_cost: float
    estimated_hours: float


@dataclass(frozen=True)
class ProposalTotals:
    subtotal: float
    tax_rate: float
    tax_amount: float
    total_amount: float
    total_labor_cost: float
    total_equipment_cost: float
    total_material_cost: float
    estimated_duration: float

    @property
    def total_cost(self) -> float:
        return self.total_labor_cost + self.total_equipment_cost + self.total_material_cost

    @property
    def profit_margin(self) -> float:
        """(subtotal - cost) / cost; 0 when there is no cost basis."""
        cost = self.total_cost
        if cost <= 0:
            return 0.0
        return (self.subtotal - cost) / cost


def line_total(quantity: float, unit_price: float) -> float:
    return require_non_negative("quantity", quantity) * require_non_negative("unit_price", unit_price)


def compute_proposal_totals(items: Iterable[CostedLineItem], tax_rate: float) -> ProposalTotals:
    """
    Full recalculation over the current line-item set.
    Sums run in line-item order so the result is reproducible.
    """
    tax_rate = require_non_negative("tax_rate", tax_rate)
    items = list(items)

    subtotal = sum(i.total_price for i in items)
    tax_amount = subtotal * tax_rate

    return ProposalTotals(
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total_amount=subtotal + tax_amount,
        total_labor_cost=sum(i.labor_cost for i in items),
        total_equipment_cost=sum(i.equipment_cost for i in items),
        total_material_cost=sum(i.material_cost for i in items),
        estimated_duration=sum(i.estimated_hours for i in items),
    )


def completion_percentage(hours_tracked: float, estimated_duration: float) -> Optional[int]:
    """
    Percent of the estimate consumed, capped at 100.
    None when there is no estimate to measure against.
    """
    hours_tracked = require_non_negative("hours_tracked", hours_tracked)
    estimated_duration = require_non_negative("estimated_duration", estimated_duration)
    if estimated_duration == 0:
        return None
    return min(100, int(round(hours_tracked / estimated_duration * 100)))
