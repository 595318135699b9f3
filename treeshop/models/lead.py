# treeshop/models/lead.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, Text, event
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from treeshop.config import get_settings
from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import (
    ContactMethod,
    LeadSource,
    ServiceType,
    UrgencyLevel,
    WorkflowStage,
)
from treeshop.errors import InvalidInputError, InvalidTransitionError, require_aware
from treeshop.models.base import EntityMixin, enum_column, new_id

# Transition kinds
TRANSITION_CREATED = "CREATED"
TRANSITION_ADVANCE = "ADVANCE"
TRANSITION_OVERRIDE = "OVERRIDE"


class StageTransition(Base):
    """One append-only entry of a lead's workflow history."""

    __tablename__ = "lead_stage_transitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    lead_id: Mapped[str] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), index=True, nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_stage: Mapped[Optional[WorkflowStage]] = mapped_column(enum_column(WorkflowStage), nullable=True)
    to_stage: Mapped[WorkflowStage] = mapped_column(enum_column(WorkflowStage), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=TRANSITION_ADVANCE)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<StageTransition #{self.sequence} {self.from_stage} -> {self.to_stage}>"


@event.listens_for(StageTransition, "before_update")
def _history_is_append_only(mapper, connection, target):
    raise InvalidTransitionError(
        "stage history entries cannot be modified",
        meta={"lead_id": target.lead_id, "sequence": target.sequence},
    )


class Lead(EntityMixin, Base):
    __tablename__ = "leads"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    # workflow (written only through _append_transition)
    _workflow_stage: Mapped[WorkflowStage] = mapped_column(
        "workflow_stage", enum_column(WorkflowStage), index=True, nullable=False
    )
    stage_history: Mapped[List[StageTransition]] = relationship(
        StageTransition,
        order_by=StageTransition.sequence,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # customer
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_existing_customer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_repeat_customer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # property location
    property_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    property_address: Mapped[str] = mapped_column(String(300), nullable=False)
    property_city: Mapped[str] = mapped_column(String(120), nullable=False)
    property_state: Mapped[str] = mapped_column(String(50), nullable=False)
    property_zip: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    property_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    property_acres: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # service request
    service_types: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    urgency_level: Mapped[UrgencyLevel] = mapped_column(enum_column(UrgencyLevel), index=True, nullable=False)
    preferred_contact_method: Mapped[ContactMethod] = mapped_column(enum_column(ContactMethod), nullable=False)
    preferred_schedule: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # source
    lead_source: Mapped[LeadSource] = mapped_column(enum_column(LeadSource), nullable=False)
    referral_source: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    marketing_campaign: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # site visit
    needs_site_visit: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    site_visit_scheduled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    site_visit_assigned_to: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    site_visit_completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    site_visit_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # project
    project_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    estimated_tree_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hazards_identified: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    access_concerns: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # assignment
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # financial
    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    quoted_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    budget_range: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # follow up
    last_contact_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_contact_method: Mapped[Optional[ContactMethod]] = mapped_column(enum_column(ContactMethod), nullable=True)
    next_follow_up_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, index=True, nullable=True)
    follow_up_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True, nullable=False)
    is_converted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, index=True, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    lost_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __init__(
        self,
        *,
        customer_name: str,
        customer_phone: str,
        property_address: str,
        property_city: str,
        property_state: str,
        property_zip: str,
        latitude: float,
        longitude: float,
        service_types: List[ServiceType],
        lead_source: LeadSource,
        project_description: str = "",
        urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM,
        preferred_contact_method: ContactMethod = ContactMethod.PHONE,
        needs_site_visit: bool = True,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        if not customer_name or not customer_name.strip():
            raise InvalidInputError("customer_name is required", meta={"field": "customer_name"})
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise InvalidInputError(
                "coordinates out of range",
                meta={"latitude": latitude, "longitude": longitude},
            )

        now = now or utcnow()
        super().__init__(
            now=now,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone,
            property_address=property_address,
            property_city=property_city,
            property_state=property_state,
            property_zip=property_zip,
            latitude=latitude,
            longitude=longitude,
            service_types=[ServiceType(s).value for s in service_types],
            lead_source=LeadSource(lead_source),
            project_description=project_description,
            urgency_level=UrgencyLevel(urgency_level),
            preferred_contact_method=ContactMethod(preferred_contact_method),
            needs_site_visit=needs_site_visit,
            next_follow_up_at=now + timedelta(days=get_settings().follow_up_days),
            attempt_count=0,
            is_active=True,
            is_converted=False,
            is_archived=False,
            is_existing_customer=False,
            is_repeat_customer=False,
            **kwargs,
        )
        self.stage_history = []
        self._append_transition(WorkflowStage.LEAD, now=now, kind=TRANSITION_CREATED)

    # ----------------------------------------------------
    # Workflow
    # ----------------------------------------------------
    @hybrid_property
    def workflow_stage(self) -> WorkflowStage:
        return self._workflow_stage

    @property
    def current_stage(self) -> WorkflowStage:
        """Canonical stage: the target of the latest history entry."""
        return self.stage_history[-1].to_stage

    def _append_transition(
        self,
        to_stage: WorkflowStage,
        now: datetime,
        notes: Optional[str] = None,
        kind: str = TRANSITION_ADVANCE,
    ) -> StageTransition:
        from_stage = self.stage_history[-1].to_stage if self.stage_history else None
        transition = StageTransition(
            id=new_id(),
            sequence=len(self.stage_history),
            from_stage=from_stage,
            to_stage=to_stage,
            occurred_at=now,
            kind=kind,
            notes=notes,
        )
        self.stage_history.append(transition)
        self._workflow_stage = to_stage
        self.touch(now)
        return transition

    def advance(self, notes: Optional[str] = None, now: Optional[datetime] = None) -> StageTransition:
        if self.is_archived:
            raise InvalidTransitionError(
                "archived leads cannot move through the workflow",
                meta={"lead_id": self.id},
            )
        current = self.current_stage
        nxt = current.next_stage
        if nxt is None:
            raise InvalidTransitionError(
                f"lead is already at terminal stage {current.value}",
                meta={"lead_id": self.id, "stage": current.value},
            )

        transition = self._append_transition(nxt, now=now or utcnow(), notes=notes)
        if nxt is WorkflowStage.PROPOSAL:
            self.is_converted = True
        return transition

    def set_stage(
        self,
        stage: WorkflowStage,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StageTransition:
        """Administrative override: jump to any stage, still recorded in history."""
        if self.is_archived:
            raise InvalidTransitionError(
                "archived leads cannot move through the workflow",
                meta={"lead_id": self.id},
            )
        stage = WorkflowStage(stage)
        transition = self._append_transition(stage, now=now or utcnow(), notes=notes, kind=TRANSITION_OVERRIDE)
        if stage is not WorkflowStage.LEAD:
            self.is_converted = True
        return transition

    def archive(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.is_archived = True
        self.is_active = False
        self.lost_reason = reason
        self.archived_at = now
        self.touch(now)

    # ----------------------------------------------------
    # Follow-up & site visit
    # ----------------------------------------------------
    def log_contact(
        self,
        method: ContactMethod,
        notes: Optional[str] = None,
        next_follow_up_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> None:
        next_follow_up_at = require_aware("next_follow_up_at", next_follow_up_at)
        now = now or utcnow()
        self.last_contact_at = now
        self.last_contact_method = ContactMethod(method)
        self.attempt_count = (self.attempt_count or 0) + 1
        if notes:
            self.follow_up_notes = notes
        self.next_follow_up_at = next_follow_up_at
        self.touch(now)

    def schedule_site_visit(
        self,
        when: datetime,
        employee_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        when = require_aware("when", when)
        self.site_visit_scheduled_at = when
        self.site_visit_assigned_to = employee_id
        self.touch(now)

    def complete_site_visit(self, notes: Optional[str] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.site_visit_completed_at = now
        self.site_visit_notes = notes
        self.touch(now)

    def assign(self, assignee: str, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.assigned_to = assignee
        self.assigned_at = now
        self.touch(now)

    # ----------------------------------------------------
    # Derived
    # ----------------------------------------------------
    @property
    def services(self) -> List[ServiceType]:
        return [ServiceType(s) for s in self.service_types or []]

    @property
    def full_address(self) -> str:
        return f"{self.property_address}, {self.property_city}, {self.property_state} {self.property_zip}"

    def days_since_created(self, now: Optional[datetime] = None) -> int:
        return ((now or utcnow()) - self.created_at).days

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.next_follow_up_at is None:
            return False
        return self.next_follow_up_at < (now or utcnow())

    def __repr__(self) -> str:
        return f"<Lead id={self.id} stage={self._workflow_stage} name={self.customer_name!r}>"
