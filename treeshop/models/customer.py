# treeshop/models/customer.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import ContactMethod, CustomerType
from treeshop.errors import InvalidInputError, require_non_negative
from treeshop.models.base import EntityMixin, enum_column

VIP_LIFETIME_VALUE = 10_000.0

# link kind -> attribute holding the identifier list
LINK_FIELDS = {
    "property": "property_ids",
    "lead": "linked_lead_ids",
    "proposal": "linked_proposal_ids",
    "work_order": "linked_work_order_ids",
    "invoice": "linked_invoice_ids",
}


def _with_id(ids: Optional[List[str]], new: str) -> List[str]:
    # JSON columns are reassigned, never mutated in place
    ids = list(ids or [])
    if new not in ids:
        ids.append(new)
    return ids


class Customer(EntityMixin, Base):
    __tablename__ = "customers"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    customer_name: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    customer_type: Mapped[CustomerType] = mapped_column(enum_column(CustomerType), nullable=False)

    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    preferred_contact_method: Mapped[ContactMethod] = mapped_column(enum_column(ContactMethod), nullable=False)

    mailing_address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    mailing_city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    mailing_state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    mailing_zip: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # relationships by reference
    property_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    linked_lead_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    linked_proposal_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    linked_work_order_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    linked_invoice_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # business intelligence
    total_jobs_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    average_job_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    lifetime_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    first_job_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_job_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_repeat_customer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    outstanding_balance: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    last_contact_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_contact_method: Mapped[Optional[ContactMethod]] = mapped_column(enum_column(ContactMethod), nullable=True)
    last_contact_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __init__(
        self,
        *,
        customer_name: str,
        phone_number: str,
        email: Optional[str] = None,
        customer_type: CustomerType = CustomerType.RESIDENTIAL,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        if not customer_name or not customer_name.strip():
            raise InvalidInputError("customer_name is required", meta={"field": "customer_name"})
        kwargs.setdefault("preferred_contact_method", ContactMethod.PHONE)
        super().__init__(
            now=now,
            customer_name=customer_name.strip(),
            phone_number=phone_number,
            email=email,
            customer_type=CustomerType(customer_type),
            property_ids=[],
            linked_lead_ids=[],
            linked_proposal_ids=[],
            linked_work_order_ids=[],
            linked_invoice_ids=[],
            tags=list(kwargs.pop("tags", [])),
            total_jobs_completed=0,
            total_revenue=0.0,
            average_job_value=0.0,
            lifetime_value=0.0,
            outstanding_balance=0.0,
            is_repeat_customer=False,
            **kwargs,
        )

    def add_job(
        self,
        value: float,
        date: datetime,
        profit: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Post a completed job. Lifetime value accumulates profit when known,
        otherwise the job value.
        """
        value = require_non_negative("value", value)
        self.total_jobs_completed = (self.total_jobs_completed or 0) + 1
        self.total_revenue = (self.total_revenue or 0.0) + value
        self.average_job_value = self.total_revenue / self.total_jobs_completed
        self.lifetime_value = (self.lifetime_value or 0.0) + (value if profit is None else profit)
        if self.first_job_date is None:
            self.first_job_date = date
        self.last_job_date = date
        if self.total_jobs_completed > 1:
            self.is_repeat_customer = True
        self.touch(now)

    def adjust_balance(self, delta: float, now: Optional[datetime] = None) -> None:
        """Invoices raise the outstanding balance, payments lower it."""
        self.outstanding_balance = max(0.0, (self.outstanding_balance or 0.0) + delta)
        self.touch(now)

    def add_property(self, property_id: str, now: Optional[datetime] = None) -> None:
        self.link("property", property_id, now=now)

    def link(self, kind: str, entity_id: str, now: Optional[datetime] = None) -> None:
        try:
            field = LINK_FIELDS[kind]
        except KeyError:
            raise InvalidInputError(f"unknown link kind {kind!r}", meta={"kinds": sorted(LINK_FIELDS)})
        current = getattr(self, field) or []
        if entity_id in current:
            return
        setattr(self, field, _with_id(current, entity_id))
        self.touch(now)

    def log_contact(self, method: ContactMethod, notes: Optional[str] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.last_contact_at = now
        self.last_contact_method = ContactMethod(method)
        self.last_contact_notes = notes
        self.touch(now)

    @property
    def property_count(self) -> int:
        return len(self.property_ids or [])

    @property
    def full_mailing_address(self) -> Optional[str]:
        parts = (self.mailing_address, self.mailing_city, self.mailing_state, self.mailing_zip)
        if not all(parts):
            return None
        return f"{self.mailing_address}, {self.mailing_city}, {self.mailing_state} {self.mailing_zip}"

    @property
    def is_vip(self) -> bool:
        return "VIP" in (self.tags or []) or (self.lifetime_value or 0.0) > VIP_LIFETIME_VALUE
