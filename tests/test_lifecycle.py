"""Lead to paid invoice, through the service layer."""
from datetime import timedelta

import pytest

from treeshop.domain.enums import (
    InvoiceStatus,
    ServiceType,
    TaskType,
    WorkflowStage,
    WorkOrderStatus,
)
from treeshop.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from treeshop.models import Customer, Employee, Equipment, Invoice, Lead, Property, WorkOrder
from treeshop.services import invoices, proposals, repository, work_orders, workflow

ITEMS = [
    dict(service_type=ServiceType.TREE_REMOVAL, quantity=1, unit_price=500, estimated_hours=12),
    dict(service_type=ServiceType.STUMP_GRINDING, quantity=2, unit_price=150, estimated_hours=8),
]


def test_lead_to_work_order_progress(db, make_lead, now):
    lead = make_lead()
    assert lead.current_stage is WorkflowStage.LEAD

    lead = workflow.advance_stage(db, lead.id, now=now)
    assert lead.current_stage is WorkflowStage.PROPOSAL
    assert lead.is_converted
    assert len(lead.stage_history) == 2

    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, tax_rate=0.07, now=now)
    assert proposal.subtotal == 800
    assert proposal.tax_amount == pytest.approx(56)
    assert proposal.total_amount == pytest.approx(856)

    proposal, wo = proposals.accept_proposal(db, proposal.id, now=now)
    assert wo.completion_percentage == 0
    assert wo.estimated_duration == 20

    entry = work_orders.start_time_entry(
        db, wo.id, task_type=TaskType.LINE_ITEM, task_category="Tree Removal", now=now
    )
    wo = work_orders.finish_time_entry(db, entry.id, now=now + timedelta(hours=10))
    assert wo.total_hours_tracked == pytest.approx(10)
    assert wo.completion_percentage == 50
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.WORK_ORDER


def test_time_costs_post_to_crew_and_equipment(db, make_lead, climber, chipper, now):
    lead = make_lead()
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    _, wo = proposals.accept_proposal(db, proposal.id, now=now)
    wo = work_orders.assign_crew(db, wo.id, [climber.id], crew_lead_id=climber.id, now=now)
    wo = work_orders.assign_equipment(db, wo.id, [chipper.id], now=now)
    wo = work_orders.start_work_order(db, wo.id, now=now)
    assert wo.status is WorkOrderStatus.IN_PROGRESS

    entry = work_orders.start_time_entry(
        db,
        wo.id,
        task_type=TaskType.LINE_ITEM,
        task_category="Tree Removal",
        line_item_id=wo.line_items[0].id,
        start_location=(29.6516, -82.3248),
        now=now,
    )
    assert entry.assigned_employee_ids == [climber.id]
    assert entry.crew_lead_id == climber.id

    work_orders.pause_time_entry(db, entry.id, now=now + timedelta(hours=2))
    work_orders.resume_time_entry(db, entry.id, now=now + timedelta(hours=3))
    wo = work_orders.finish_time_entry(db, entry.id, now=now + timedelta(hours=5), points_completed=34_785)

    # 15/hr tier 1 -> 24.00 wage -> 38.40 loaded cost
    assert wo.total_labor_cost == pytest.approx(38.4 * 4)
    assert wo.total_equipment_cost == pytest.approx(chipper.total_hourly_cost * 4)
    assert wo.actual_total_cost == pytest.approx(wo.total_labor_cost + wo.total_equipment_cost)

    machine = repository.get(db, Equipment, chipper.id)
    assert machine.hours_used_this_year == pytest.approx(4)
    assert machine.should_consider_replacement
    worker = repository.get(db, Employee, climber.id)
    assert worker.total_hours_worked == pytest.approx(4)
    assert worker.average_pph == pytest.approx(34_785 / 4)

    with pytest.raises(InvalidTransitionError):
        work_orders.log_time_entry(db, entry.id, now=now)


def test_unknown_crew_is_rejected(db, make_lead, now):
    proposal = proposals.create_proposal_for_lead(db, make_lead().id, line_items=ITEMS, now=now)
    _, wo = proposals.accept_proposal(db, proposal.id, now=now)
    with pytest.raises(NotFoundError):
        work_orders.assign_crew(db, wo.id, ["ghost"], now=now)


def test_full_job_is_billed_and_paid(db, make_lead, customer_and_property, climber, now):
    customer, prop = customer_and_property
    lead = make_lead(customer_id=customer.id, property_id=prop.id)
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, tax_rate=0.07, now=now)
    _, wo = proposals.accept_proposal(db, proposal.id, now=now)
    work_orders.assign_crew(db, wo.id, [climber.id], now=now)

    with pytest.raises(InvalidTransitionError):
        invoices.create_invoice_for_work_order(db, wo.id, now=now)

    work_orders.start_work_order(db, wo.id, now=now)
    entry = work_orders.start_time_entry(db, wo.id, task_type=TaskType.LINE_ITEM, task_category="Removal", now=now)
    work_orders.finish_time_entry(db, entry.id, now=now + timedelta(hours=6))
    wo = work_orders.complete_work_order(db, wo.id, now=now + timedelta(hours=7))
    assert wo.status is WorkOrderStatus.COMPLETED
    assert repository.get(db, Employee, climber.id).jobs_completed == 1

    invoice = invoices.create_invoice_for_work_order(db, wo.id, now=now + timedelta(days=1))
    assert invoice.subtotal == 800
    assert invoice.total_amount == pytest.approx(856)
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.INVOICE
    assert repository.get(db, Customer, customer.id).outstanding_balance == pytest.approx(856)

    invoice = invoices.record_payment(db, invoice.id, 300, method="check", now=now + timedelta(days=3))
    assert invoice.status is InvoiceStatus.PARTIALLY_PAID
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.INVOICE

    with pytest.raises(InvalidInputError):
        invoices.record_payment(db, invoice.id, 10_000, now=now + timedelta(days=4))

    invoice = invoices.record_payment(db, invoice.id, invoice.balance_due, method="card", now=now + timedelta(days=5))
    assert invoice.status is InvoiceStatus.PAID
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.COMPLETED

    customer = repository.get(db, Customer, customer.id)
    assert customer.total_jobs_completed == 1
    assert customer.total_revenue == pytest.approx(856)
    assert customer.outstanding_balance == pytest.approx(0, abs=1e-6)
    prop = repository.get(db, Property, prop.id)
    assert prop.jobs_completed == 1
    assert invoice.id in prop.invoice_ids


def test_void_unpaid_invoice_clears_balance(db, make_lead, customer_and_property, now):
    customer, prop = customer_and_property
    lead = make_lead(customer_id=customer.id, property_id=prop.id)
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    _, wo = proposals.accept_proposal(db, proposal.id, now=now)
    work_orders.complete_work_order(db, wo.id, now=now)
    invoice = invoices.create_invoice_for_work_order(db, wo.id, now=now)

    invoice = invoices.void_invoice(db, invoice.id, reason="Billed twice", now=now)
    assert invoice.status is InvoiceStatus.VOID
    assert repository.get(db, Customer, customer.id).outstanding_balance == 0


def test_work_order_is_invoiced_once(db, make_lead, now):
    lead = make_lead()
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    _, wo = proposals.accept_proposal(db, proposal.id, now=now)
    work_orders.complete_work_order(db, wo.id, now=now)
    first = invoices.create_invoice_for_work_order(db, wo.id, now=now)

    with pytest.raises(InvalidTransitionError):
        invoices.create_invoice_for_work_order(db, wo.id, now=now)
    assert db.query(Invoice).count() == 1
    assert repository.get(db, WorkOrder, wo.id).invoice_id == first.id


def test_voided_invoice_can_be_reissued_and_paid(db, make_lead, customer_and_property, now):
    customer, prop = customer_and_property
    lead = make_lead(customer_id=customer.id, property_id=prop.id)
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    _, wo = proposals.accept_proposal(db, proposal.id, now=now)
    work_orders.complete_work_order(db, wo.id, now=now)
    voided = invoices.create_invoice_for_work_order(db, wo.id, now=now)
    invoices.void_invoice(db, voided.id, reason="Wrong tax rate", now=now)

    wo = repository.get(db, WorkOrder, wo.id)
    assert not wo.converted_to_invoice
    assert wo.invoice_id is None

    reissued = invoices.create_invoice_for_work_order(db, wo.id, now=now + timedelta(hours=1))
    assert reissued.id != voided.id
    assert repository.get(db, WorkOrder, wo.id).invoice_id == reissued.id
    assert repository.get(db, Customer, customer.id).outstanding_balance == pytest.approx(800)

    invoices.record_payment(db, reissued.id, reissued.total_amount, now=now + timedelta(days=2))
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.COMPLETED
    assert repository.get(db, Invoice, voided.id).status is InvoiceStatus.VOID
