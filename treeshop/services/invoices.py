# treeshop/services/invoices.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from treeshop.db import utcnow
from treeshop.domain.enums import WorkflowStage, WorkOrderStatus
from treeshop.errors import InvalidTransitionError
from treeshop.logging_config import bind_context, get_logger
from treeshop.models.invoice import Invoice
from treeshop.models.proposal import Proposal
from treeshop.models.work_order import WorkOrder
from treeshop.observability.metrics import invoice_paid_counter
from treeshop.services import repository
from treeshop.services.links import link_to_owners, owners
from treeshop.services.workflow import advance_if_at

logger = get_logger(__name__)


def get_invoice(db: Session, invoice_id: str) -> Invoice:
    return repository.get(db, Invoice, invoice_id)


def create_invoice_for_work_order(db: Session, work_order_id: str, now: Optional[datetime] = None) -> Invoice:
    """
    Bill a completed work order at its estimated line-item cost and the
    proposal's tax rate; the lead moves WORK_ORDER -> INVOICE.
    """
    now = now or utcnow()
    wo = repository.get(db, WorkOrder, work_order_id)
    if wo.status is not WorkOrderStatus.COMPLETED:
        raise InvalidTransitionError(
            "only completed work orders can be invoiced",
            meta={"work_order_id": wo.id, "status": wo.status.value},
        )
    proposal = repository.get(db, Proposal, wo.proposal_id)

    with bind_context(lead_id=wo.lead_id, proposal_id=proposal.id, work_order_id=wo.id):
        try:
            invoice = Invoice.from_work_order(wo, tax_rate=proposal.tax_rate, now=now)
            wo.mark_invoiced(invoice.id, now=now)
            db.add(invoice)
            db.flush()
            customer, _ = link_to_owners(db, "invoice", invoice.id, wo.customer_id, wo.property_id, now=now)
            if customer is not None:
                customer.adjust_balance(invoice.total_amount, now=now)
            if wo.lead_id:
                advance_if_at(db, wo.lead_id, WorkflowStage.WORK_ORDER, "Invoice issued", now=now)
        except Exception:
            db.rollback()
            raise
        repository.commit(db)
        db.refresh(invoice)
        logger.info(
            "invoice_created",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total_amount=invoice.total_amount,
        )
    return invoice


def record_payment(
    db: Session,
    invoice_id: str,
    amount: float,
    method: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Invoice:
    """
    Apply a payment. Settling the invoice completes the lead and posts the
    job to the customer and property aggregates.
    """
    now = now or utcnow()
    invoice = get_invoice(db, invoice_id)
    customer, prop = owners(db, invoice.customer_id, invoice.property_id)
    wo = db.get(WorkOrder, invoice.work_order_id)

    with bind_context(lead_id=invoice.lead_id, work_order_id=invoice.work_order_id):
        try:
            settled = invoice.record_payment(amount, method=method, now=now)
            if customer is not None:
                customer.adjust_balance(-amount, now=now)
            if settled:
                if customer is not None:
                    cost = wo.actual_total_cost if wo is not None else None
                    profit = None if cost is None else invoice.subtotal - cost
                    customer.add_job(invoice.total_amount, now, profit=profit, now=now)
                if prop is not None:
                    prop.add_job(invoice.total_amount, now, now=now)
                if invoice.lead_id:
                    advance_if_at(db, invoice.lead_id, WorkflowStage.INVOICE, "Invoice paid", now=now)
        except Exception:
            db.rollback()
            raise
        repository.commit(db)
        db.refresh(invoice)

        logger.info(
            "invoice_payment_recorded",
            invoice_id=invoice.id,
            amount=amount,
            balance_due=invoice.balance_due,
            status=invoice.status.value,
        )
        if settled:
            invoice_paid_counter.inc()
            logger.info("invoice_paid", invoice_id=invoice.id, total_amount=invoice.total_amount)
    return invoice


def void_invoice(db: Session, invoice_id: str, reason: Optional[str] = None, now: Optional[datetime] = None) -> Invoice:
    """Cancel an unpaid invoice; its work order can then be billed again."""
    invoice = get_invoice(db, invoice_id)
    customer, _ = owners(db, invoice.customer_id, None)
    wo = db.get(WorkOrder, invoice.work_order_id)
    total = invoice.total_amount

    def _void(inv: Invoice) -> None:
        inv.void(reason=reason, now=now)
        if customer is not None:
            customer.adjust_balance(-total, now=now)
        if wo is not None:
            wo.clear_invoice(inv.id, now=now)

    invoice = repository.update(db, invoice, _void)
    logger.info("invoice_voided", invoice_id=invoice.id, reason=reason)
    return invoice
