# treeshop/models/proposal.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treeshop.config import get_settings
from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import ProposalStatus, ServiceType
from treeshop.domain.rollups import ProposalTotals, compute_proposal_totals, line_total
from treeshop.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    require_int_in_range,
    require_non_negative,
)
from treeshop.models.base import EntityMixin, enum_column, new_id, short_code

DEFAULT_PAYMENT_TERMS = "Due on receipt"
MAX_QUANTITY = 1_000_000

# statuses a customer can still act on
OPEN_STATUSES = (ProposalStatus.DRAFT, ProposalStatus.SENT, ProposalStatus.VIEWED)

LINE_ITEM_FIELDS = (
    "service_type",
    "description",
    "quantity",
    "unit_of_measure",
    "unit_price",
    "labor_cost",
    "equipment_cost",
    "material_cost",
    "estimated_hours",
    "tree_score_points",
    "tree_ids",
)


class ProposalLineItem(Base):
    __tablename__ = "proposal_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    proposal_id: Mapped[str] = mapped_column(
        ForeignKey("proposals.id", ondelete="CASCADE"), index=True, nullable=False
    )
    item_number: Mapped[int] = mapped_column(Integer, nullable=False)
    service_type: Mapped[ServiceType] = mapped_column(enum_column(ServiceType), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(20), nullable=False, default="each")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)

    # internal cost breakdown (not shown to the customer)
    labor_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    equipment_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    material_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    estimated_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    tree_score_points: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tree_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    def __init__(
        self,
        *,
        service_type: ServiceType,
        quantity: int,
        unit_price: float,
        description: str = "",
        unit_of_measure: str = "each",
        labor_cost: float = 0.0,
        equipment_cost: float = 0.0,
        material_cost: float = 0.0,
        estimated_hours: float = 0.0,
        tree_score_points: Optional[float] = None,
        tree_ids: Optional[List[str]] = None,
        item_number: int = 0,
    ):
        values = _validated_line_values(
            service_type=service_type,
            description=description,
            quantity=quantity,
            unit_of_measure=unit_of_measure,
            unit_price=unit_price,
            labor_cost=labor_cost,
            equipment_cost=equipment_cost,
            material_cost=material_cost,
            estimated_hours=estimated_hours,
            tree_score_points=tree_score_points,
            tree_ids=tree_ids or [],
        )
        super().__init__(id=new_id(), item_number=item_number, **values)

    @property
    def total_price(self) -> float:
        return line_total(self.quantity, self.unit_price)

    @property
    def total_cost(self) -> float:
        return self.labor_cost + self.equipment_cost + self.material_cost


def _validated_line_values(**values) -> dict:
    """Validate a full set of line item values; raises before anything is assigned."""
    out = dict(values)
    out["service_type"] = ServiceType(values["service_type"])
    out["quantity"] = require_int_in_range("quantity", values["quantity"], 0, MAX_QUANTITY)
    for name in ("unit_price", "labor_cost", "equipment_cost", "material_cost", "estimated_hours"):
        out[name] = require_non_negative(name, values[name])
    if values.get("tree_score_points") is not None:
        out["tree_score_points"] = require_non_negative("tree_score_points", values["tree_score_points"])
    out["tree_ids"] = list(values.get("tree_ids") or [])
    return out


class Proposal(EntityMixin, Base):
    """
    Quote sent to a customer.

    Money rollups (subtotal, tax, total, cost breakdown, margin) are not
    stored: `totals` recomputes them from the current line items on every
    read.
    """

    __tablename__ = "proposals"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    proposal_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id"), index=True, nullable=False)
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    property_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    property_address: Mapped[str] = mapped_column(String(300), nullable=False)
    property_city: Mapped[str] = mapped_column(String(120), nullable=False)
    property_state: Mapped[str] = mapped_column(String(50), nullable=False)
    property_zip: Mapped[str] = mapped_column(String(20), nullable=False)

    line_items: Mapped[List[ProposalLineItem]] = relationship(
        ProposalLineItem,
        order_by=ProposalLineItem.item_number,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    tax_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    afiss_multiplier: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    proposal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[ProposalStatus] = mapped_column(enum_column(ProposalStatus), index=True, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    declined_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    decline_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    payment_terms: Mapped[str] = mapped_column(String(100), nullable=False, default=DEFAULT_PAYMENT_TERMS)
    deposit_required: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    deposit_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deposit_paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    converted_to_work_order: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    work_order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    converted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    def __init__(
        self,
        *,
        lead_id: str,
        customer_name: str,
        customer_phone: str,
        property_address: str,
        property_city: str,
        property_state: str,
        property_zip: str,
        line_items: Optional[List[ProposalLineItem]] = None,
        tax_rate: Optional[float] = None,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        now = now or utcnow()
        s = get_settings()
        tax_rate = require_non_negative("tax_rate", s.default_tax_rate if tax_rate is None else tax_rate)
        super().__init__(
            now=now,
            proposal_number=short_code("PROP", now),
            lead_id=lead_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            property_address=property_address,
            property_city=property_city,
            property_state=property_state,
            property_zip=property_zip,
            tax_rate=tax_rate,
            status=ProposalStatus.DRAFT,
            expires_at=now + timedelta(days=s.proposal_validity_days),
            payment_terms=kwargs.pop("payment_terms", DEFAULT_PAYMENT_TERMS),
            deposit_paid=False,
            converted_to_work_order=False,
            **kwargs,
        )
        self.line_items = []
        for item in line_items or []:
            self.line_items.append(item)
        self._renumber()

    @classmethod
    def for_lead(cls, lead, **kwargs) -> "Proposal":
        """Snapshot the lead's customer and property details onto a new proposal."""
        return cls(
            lead_id=lead.id,
            customer_id=lead.customer_id,
            customer_name=lead.customer_name,
            customer_phone=lead.customer_phone,
            customer_email=lead.customer_email,
            property_id=lead.property_id,
            property_address=lead.property_address,
            property_city=lead.property_city,
            property_state=lead.property_state,
            property_zip=lead.property_zip,
            **kwargs,
        )

    # ----------------------------------------------------
    # Rollups (derived on read)
    # ----------------------------------------------------
    @property
    def totals(self) -> ProposalTotals:
        return compute_proposal_totals(self.line_items, self.tax_rate)

    def recalculate_totals(self) -> ProposalTotals:
        return self.totals

    @property
    def subtotal(self) -> float:
        return self.totals.subtotal

    @property
    def tax_amount(self) -> float:
        return self.totals.tax_amount

    @property
    def total_amount(self) -> float:
        return self.totals.total_amount

    @property
    def total_labor_cost(self) -> float:
        return self.totals.total_labor_cost

    @property
    def total_equipment_cost(self) -> float:
        return self.totals.total_equipment_cost

    @property
    def total_material_cost(self) -> float:
        return self.totals.total_material_cost

    @property
    def profit_margin(self) -> float:
        return self.totals.profit_margin

    @property
    def estimated_duration(self) -> float:
        return self.totals.estimated_duration

    # ----------------------------------------------------
    # Line items
    # ----------------------------------------------------
    def _require_editable(self) -> None:
        if self.status not in OPEN_STATUSES:
            raise InvalidTransitionError(
                f"line items cannot change once a proposal is {self.status.value}",
                meta={"proposal_id": self.id, "status": self.status.value},
            )

    def _renumber(self) -> None:
        for idx, item in enumerate(self.line_items, start=1):
            item.item_number = idx

    def _find_item(self, item_id: str) -> ProposalLineItem:
        for item in self.line_items:
            if item.id == item_id:
                return item
        raise NotFoundError("line item not found", meta={"proposal_id": self.id, "line_item_id": item_id})

    def add_line_item(self, item: ProposalLineItem, now: Optional[datetime] = None) -> ProposalLineItem:
        self._require_editable()
        self.line_items.append(item)
        self._renumber()
        self.touch(now)
        return item

    def remove_line_item(self, item_id: str, now: Optional[datetime] = None) -> None:
        self._require_editable()
        item = self._find_item(item_id)
        self.line_items.remove(item)
        self._renumber()
        self.touch(now)

    def update_line_item(self, item_id: str, now: Optional[datetime] = None, **changes) -> ProposalLineItem:
        self._require_editable()
        unknown = sorted(set(changes) - set(LINE_ITEM_FIELDS))
        if unknown:
            raise InvalidInputError("unknown line item fields", meta={"fields": unknown})

        item = self._find_item(item_id)
        values = {name: getattr(item, name) for name in LINE_ITEM_FIELDS}
        values.update(changes)
        for name, value in _validated_line_values(**values).items():
            setattr(item, name, value)
        self.touch(now)
        return item

    def set_tax_rate(self, tax_rate: float, now: Optional[datetime] = None) -> None:
        self._require_editable()
        self.tax_rate = require_non_negative("tax_rate", tax_rate)
        self.touch(now)

    # ----------------------------------------------------
    # Status
    # ----------------------------------------------------
    def _require_status(self, allowed, action: str) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(
                f"cannot {action} a proposal that is {self.status.value}",
                meta={"proposal_id": self.id, "status": self.status.value, "action": action},
            )

    def mark_sent(self, now: Optional[datetime] = None) -> None:
        self._require_status((ProposalStatus.DRAFT,), "send")
        now = now or utcnow()
        self.status = ProposalStatus.SENT
        self.sent_at = now
        self.touch(now)

    def mark_viewed(self, now: Optional[datetime] = None) -> None:
        self._require_status(OPEN_STATUSES, "view")
        now = now or utcnow()
        if self.status is ProposalStatus.SENT:
            self.status = ProposalStatus.VIEWED
        if self.viewed_at is None:
            self.viewed_at = now
        self.touch(now)

    def mark_accepted(self, now: Optional[datetime] = None) -> None:
        self._require_status(OPEN_STATUSES, "accept")
        now = now or utcnow()
        self.status = ProposalStatus.ACCEPTED
        self.accepted_at = now
        self.touch(now)

    def mark_declined(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        self._require_status(OPEN_STATUSES, "decline")
        now = now or utcnow()
        self.status = ProposalStatus.DECLINED
        self.declined_at = now
        self.decline_reason = reason
        self.touch(now)

    def expire_if_due(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.status in OPEN_STATUSES and self.expires_at is not None and now > self.expires_at:
            self.status = ProposalStatus.EXPIRED
            self.touch(now)
            return True
        return False

    def mark_converted(self, work_order_id: str, now: Optional[datetime] = None) -> None:
        if self.status is not ProposalStatus.ACCEPTED:
            raise InvalidTransitionError(
                "only accepted proposals become work orders",
                meta={"proposal_id": self.id, "status": self.status.value},
            )
        if self.converted_to_work_order:
            raise InvalidTransitionError(
                "proposal already has a work order",
                meta={"proposal_id": self.id, "work_order_id": self.work_order_id},
            )
        now = now or utcnow()
        self.converted_to_work_order = True
        self.work_order_id = work_order_id
        self.converted_at = now
        self.touch(now)

    def record_deposit(self, amount: float, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.deposit_required = require_non_negative("deposit", amount)
        self.deposit_paid = True
        self.deposit_paid_at = now
        self.touch(now)

    @property
    def full_property_address(self) -> str:
        return f"{self.property_address}, {self.property_city}, {self.property_state} {self.property_zip}"
