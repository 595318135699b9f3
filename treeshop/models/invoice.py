# treeshop/models/invoice.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.config import get_settings
from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import InvoiceStatus
from treeshop.errors import InvalidInputError, InvalidTransitionError, require_non_negative, require_positive
from treeshop.models.base import EntityMixin, enum_column, short_code

# payments are compared in cents
_CENT = 0.005


class Invoice(EntityMixin, Base):
    """Bill for a finished work order. Amounts are fixed when the invoice is issued."""

    __tablename__ = "invoices"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    invoice_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    # one live invoice per work order, enforced through WorkOrder.mark_invoiced; voided rows stay
    work_order_id: Mapped[str] = mapped_column(ForeignKey("work_orders.id"), index=True, nullable=False)
    proposal_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    lead_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    property_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    due_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)

    amount_paid: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    payments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[InvoiceStatus] = mapped_column(enum_column(InvoiceStatus), index=True, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @classmethod
    def from_work_order(cls, work_order, tax_rate: float, now: Optional[datetime] = None) -> "Invoice":
        now = now or utcnow()
        tax_rate = require_non_negative("tax_rate", tax_rate)
        subtotal = work_order.estimated_total_cost
        tax_amount = subtotal * tax_rate
        return cls(
            now=now,
            invoice_number=short_code("INV", now),
            work_order_id=work_order.id,
            proposal_id=work_order.proposal_id,
            lead_id=work_order.lead_id,
            customer_id=work_order.customer_id,
            property_id=work_order.property_id,
            customer_name=work_order.customer_name,
            issued_at=now,
            due_at=now + timedelta(days=get_settings().invoice_due_days),
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total_amount=subtotal + tax_amount,
            amount_paid=0.0,
            payments=[],
            status=InvoiceStatus.UNPAID,
        )

    @property
    def balance_due(self) -> float:
        return max(0.0, self.total_amount - (self.amount_paid or 0.0))

    @property
    def is_paid(self) -> bool:
        return self.status is InvoiceStatus.PAID

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.status in (InvoiceStatus.PAID, InvoiceStatus.VOID):
            return False
        return (now or utcnow()) > self.due_at

    def record_payment(
        self,
        amount: float,
        method: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Apply a payment; returns True when this payment settles the invoice."""
        if self.status in (InvoiceStatus.PAID, InvoiceStatus.VOID):
            raise InvalidTransitionError(
                f"cannot take a payment on a {self.status.value} invoice",
                meta={"invoice_id": self.id, "status": self.status.value},
            )
        amount = require_positive("amount", amount)
        if amount > self.balance_due + _CENT:
            raise InvalidInputError(
                "payment exceeds balance due",
                meta={"invoice_id": self.id, "amount": amount, "balance_due": self.balance_due},
            )

        now = now or utcnow()
        self.payments = list(self.payments or []) + [
            {"amount": amount, "method": method, "received_at": now.isoformat()}
        ]
        self.amount_paid = (self.amount_paid or 0.0) + amount
        if self.balance_due <= _CENT:
            self.status = InvoiceStatus.PAID
            self.paid_at = now
        else:
            self.status = InvoiceStatus.PARTIALLY_PAID
        self.touch(now)
        return self.status is InvoiceStatus.PAID

    def void(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if self.amount_paid:
            raise InvalidTransitionError(
                "an invoice with payments cannot be voided",
                meta={"invoice_id": self.id, "amount_paid": self.amount_paid},
            )
        if self.status is InvoiceStatus.VOID:
            raise InvalidTransitionError("invoice already void", meta={"invoice_id": self.id})
        now = now or utcnow()
        self.status = InvoiceStatus.VOID
        self.voided_at = now
        if reason:
            self.notes = reason
        self.touch(now)
