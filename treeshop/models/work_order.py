# treeshop/models/work_order.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import (
    JournalEntryType,
    LineItemStatus,
    ServiceType,
    UrgencyLevel,
    WorkOrderStatus,
)
from treeshop.domain.rollups import completion_percentage
from treeshop.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    require_non_negative,
)
from treeshop.models.base import EntityMixin, enum_column, new_id, short_code

# statuses in which time can still be logged / progress changed
WORKABLE_STATUSES = (WorkOrderStatus.SCHEDULED, WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.ON_HOLD)


class WorkOrderLineItem(Base):
    __tablename__ = "work_order_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    work_order_id: Mapped[str] = mapped_column(
        ForeignKey("work_orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    item_number: Mapped[int] = mapped_column(Integer, nullable=False)
    proposal_line_item_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    service_type: Mapped[ServiceType] = mapped_column(enum_column(ServiceType), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    estimated_hours: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    actual_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[LineItemStatus] = mapped_column(enum_column(LineItemStatus), nullable=False)
    assigned_employee_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    tree_score_points: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tree_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    @classmethod
    def from_proposal_item(cls, item) -> "WorkOrderLineItem":
        """Carry estimates over; actuals start empty and status Pending."""
        return cls(
            id=new_id(),
            item_number=item.item_number,
            proposal_line_item_id=item.id,
            service_type=item.service_type,
            description=item.description,
            estimated_hours=item.estimated_hours,
            estimated_cost=item.total_price,
            actual_hours=None,
            actual_cost=None,
            status=LineItemStatus.PENDING,
            assigned_employee_ids=[],
            tree_score_points=item.tree_score_points,
            tree_ids=list(item.tree_ids or []),
        )


class JournalEntry(Base):
    __tablename__ = "work_order_journal_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    work_order_id: Mapped[str] = mapped_column(
        ForeignKey("work_orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    entry_type: Mapped[JournalEntryType] = mapped_column(enum_column(JournalEntryType), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)


class WorkOrder(EntityMixin, Base):
    __tablename__ = "work_orders"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    work_order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    proposal_id: Mapped[str] = mapped_column(ForeignKey("proposals.id"), unique=True, nullable=False)
    lead_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    property_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    property_address: Mapped[str] = mapped_column(String(300), nullable=False)

    job_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    service_types: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    line_items: Mapped[List[WorkOrderLineItem]] = relationship(
        WorkOrderLineItem,
        order_by=WorkOrderLineItem.item_number,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    scheduled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    actual_start_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    actual_end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    estimated_duration: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    actual_duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    assigned_employee_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    crew_lead_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    assigned_equipment_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # time tracking accumulators (written only by add_time_entry)
    time_entry_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    total_hours_tracked: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_labor_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_equipment_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    actual_total_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    completion_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[WorkOrderStatus] = mapped_column(enum_column(WorkOrderStatus), index=True, nullable=False)
    priority: Mapped[UrgencyLevel] = mapped_column(enum_column(UrgencyLevel), nullable=False)

    journal_entries: Mapped[List[JournalEntry]] = relationship(
        JournalEntry,
        order_by=JournalEntry.occurred_at,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    converted_to_invoice: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    invoice_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    invoice_created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    @classmethod
    def from_proposal(
        cls,
        proposal,
        priority: UrgencyLevel = UrgencyLevel.MEDIUM,
        job_description: str = "",
        now: Optional[datetime] = None,
    ) -> "WorkOrder":
        now = now or utcnow()
        items = [WorkOrderLineItem.from_proposal_item(i) for i in proposal.line_items]
        service_types: List[str] = []
        for item in items:
            if item.service_type.value not in service_types:
                service_types.append(item.service_type.value)

        wo = cls(
            now=now,
            work_order_number=short_code("WO", now),
            proposal_id=proposal.id,
            lead_id=proposal.lead_id,
            customer_id=proposal.customer_id,
            property_id=proposal.property_id,
            customer_name=proposal.customer_name,
            customer_phone=proposal.customer_phone,
            property_address=proposal.full_property_address,
            job_description=job_description,
            service_types=service_types,
            estimated_duration=proposal.estimated_duration,
            assigned_employee_ids=[],
            assigned_equipment_ids=[],
            time_entry_ids=[],
            total_hours_tracked=0.0,
            total_labor_cost=0.0,
            total_equipment_cost=0.0,
            completion_percentage=0,
            status=WorkOrderStatus.SCHEDULED,
            priority=UrgencyLevel(priority),
            converted_to_invoice=False,
        )
        wo.line_items = items
        return wo

    # ----------------------------------------------------
    # Status
    # ----------------------------------------------------
    def _require_workable(self, action: str) -> None:
        if self.status not in WORKABLE_STATUSES:
            raise InvalidTransitionError(
                f"cannot {action} a work order that is {self.status.value}",
                meta={"work_order_id": self.id, "status": self.status.value, "action": action},
            )

    def start_work(self, now: Optional[datetime] = None) -> None:
        self._require_workable("start")
        now = now or utcnow()
        self.status = WorkOrderStatus.IN_PROGRESS
        if self.actual_start_at is None:
            self.actual_start_at = now
        self.touch(now)

    def put_on_hold(self, now: Optional[datetime] = None) -> None:
        self._require_workable("hold")
        self.status = WorkOrderStatus.ON_HOLD
        self.touch(now)

    def cancel(self, now: Optional[datetime] = None) -> None:
        self._require_workable("cancel")
        self.status = WorkOrderStatus.CANCELLED
        self.touch(now)

    def complete_work(self, now: Optional[datetime] = None) -> None:
        """
        Close the job. completion_percentage is left as tracked: it only
        moves through add_time_entry.
        """
        self._require_workable("complete")
        now = now or utcnow()
        self.status = WorkOrderStatus.COMPLETED
        self.actual_end_at = now
        if self.actual_start_at is not None:
            self.actual_duration = (now - self.actual_start_at).total_seconds() / 3600.0
        self.touch(now)

    # ----------------------------------------------------
    # Crew & equipment
    # ----------------------------------------------------
    def assign_crew(
        self,
        employee_ids: Iterable[str],
        crew_lead_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        ids = list(dict.fromkeys(employee_ids))
        if crew_lead_id is not None and crew_lead_id not in ids:
            raise InvalidInputError(
                "crew lead must be a member of the crew",
                meta={"crew_lead_id": crew_lead_id},
            )
        self.assigned_employee_ids = ids
        self.crew_lead_id = crew_lead_id
        self.touch(now)

    def assign_equipment(self, equipment_ids: Iterable[str], now: Optional[datetime] = None) -> None:
        self.assigned_equipment_ids = list(dict.fromkeys(equipment_ids))
        self.touch(now)

    @property
    def crew_size(self) -> int:
        return len(self.assigned_employee_ids or [])

    # ----------------------------------------------------
    # Time tracking
    # ----------------------------------------------------
    def add_time_entry(
        self,
        time_entry_id: str,
        hours: float,
        labor_cost: float,
        equipment_cost: float,
        now: Optional[datetime] = None,
    ) -> None:
        self._require_workable("log time on")
        hours = require_non_negative("hours", hours)
        labor_cost = require_non_negative("labor_cost", labor_cost)
        equipment_cost = require_non_negative("equipment_cost", equipment_cost)
        if time_entry_id in (self.time_entry_ids or []):
            raise InvalidInputError(
                "time entry already logged on this work order",
                meta={"work_order_id": self.id, "time_entry_id": time_entry_id},
            )

        self.time_entry_ids = list(self.time_entry_ids or []) + [time_entry_id]
        self.total_hours_tracked = (self.total_hours_tracked or 0.0) + hours
        self.total_labor_cost = (self.total_labor_cost or 0.0) + labor_cost
        self.total_equipment_cost = (self.total_equipment_cost or 0.0) + equipment_cost
        self.actual_total_cost = self.total_labor_cost + self.total_equipment_cost

        pct = completion_percentage(self.total_hours_tracked, self.estimated_duration or 0.0)
        if pct is not None:
            self.completion_percentage = pct
        self.touch(now)

    def update_line_item_progress(
        self,
        item_id: str,
        actual_hours: Optional[float] = None,
        actual_cost: Optional[float] = None,
        status: Optional[LineItemStatus] = None,
        now: Optional[datetime] = None,
    ) -> WorkOrderLineItem:
        self._require_workable("update")
        item = next((i for i in self.line_items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("line item not found", meta={"work_order_id": self.id, "line_item_id": item_id})

        if actual_hours is not None:
            actual_hours = require_non_negative("actual_hours", actual_hours)
        if actual_cost is not None:
            actual_cost = require_non_negative("actual_cost", actual_cost)
        new_status = LineItemStatus(status) if status is not None else None

        if actual_hours is not None:
            item.actual_hours = actual_hours
        if actual_cost is not None:
            item.actual_cost = actual_cost
        if new_status is not None:
            item.status = new_status
        self.touch(now)
        return item

    def add_journal_entry(
        self,
        entry_type: JournalEntryType,
        title: str,
        description: str = "",
        author_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> JournalEntry:
        if not title or not title.strip():
            raise InvalidInputError("journal title is required", meta={"field": "title"})
        now = now or utcnow()
        entry = JournalEntry(
            id=new_id(),
            occurred_at=now,
            entry_type=JournalEntryType(entry_type),
            title=title.strip(),
            description=description,
            author_id=author_id,
        )
        self.journal_entries.append(entry)
        self.touch(now)
        return entry

    def mark_invoiced(self, invoice_id: str, now: Optional[datetime] = None) -> None:
        if self.converted_to_invoice:
            raise InvalidTransitionError(
                "work order already invoiced",
                meta={"work_order_id": self.id, "invoice_id": self.invoice_id},
            )
        now = now or utcnow()
        self.converted_to_invoice = True
        self.invoice_id = invoice_id
        self.invoice_created_at = now
        self.touch(now)

    def clear_invoice(self, invoice_id: str, now: Optional[datetime] = None) -> None:
        """Release the billing link after its invoice is voided."""
        if self.invoice_id != invoice_id:
            raise InvalidTransitionError(
                "invoice is not the live invoice for this work order",
                meta={"work_order_id": self.id, "invoice_id": invoice_id, "live_invoice_id": self.invoice_id},
            )
        self.converted_to_invoice = False
        self.invoice_id = None
        self.invoice_created_at = None
        self.touch(now)

    # ----------------------------------------------------
    # Derived
    # ----------------------------------------------------
    @property
    def estimated_total_cost(self) -> float:
        return sum(i.estimated_cost for i in self.line_items)

    @property
    def performance_variance(self) -> Optional[float]:
        if self.actual_total_cost is None:
            return None
        return self.actual_total_cost - self.estimated_total_cost

    @property
    def total_tree_points(self) -> float:
        return sum(i.tree_score_points or 0.0 for i in self.line_items)

    @property
    def actual_pph(self) -> Optional[float]:
        if not self.total_hours_tracked:
            return None
        return self.total_tree_points / self.total_hours_tracked
