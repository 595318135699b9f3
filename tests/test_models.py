from datetime import datetime, timedelta, timezone

import pytest

from treeshop.domain.enums import (
    CareerTrack,
    EquipmentType,
    InvoiceStatus,
    JournalEntryType,
    LineItemStatus,
    ProposalStatus,
    ServiceType,
    TaskType,
    TreeHealthStatus,
    WorkOrderStatus,
)
from treeshop.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from treeshop.models import (
    Customer,
    Employee,
    Equipment,
    Invoice,
    Property,
    Proposal,
    ProposalLineItem,
    TimeEntry,
    Tree,
    WorkOrder,
)

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _proposal(*items, tax_rate=0.07):
    return Proposal(
        lead_id="lead-1",
        customer_name="Dana Whitfield",
        customer_phone="555-0142",
        property_address="12 Live Oak Ln",
        property_city="Gainesville",
        property_state="FL",
        property_zip="32601",
        line_items=list(items),
        tax_rate=tax_rate,
        now=NOW,
    )


def _item(price, qty=1, hours=0.0, **kw):
    return ProposalLineItem(
        service_type=kw.pop("service_type", ServiceType.TREE_REMOVAL),
        quantity=qty,
        unit_price=price,
        estimated_hours=hours,
        **kw,
    )


# ----------------------------------------------------
# Tree
# ----------------------------------------------------
def test_tree_caches_scores():
    tree = Tree(latitude=29.65, longitude=-82.32, species="Quercus virginiana", dbh=24, height=60, canopy_radius=15)
    assert tree.tree_score == 34_785
    assert tree.crown_spread == 30
    assert tree.trim_score is None


def test_tree_rejected_measurement_leaves_fields_untouched():
    tree = Tree(latitude=0, longitude=0, species="Pine", dbh=10, height=40, canopy_radius=8)
    with pytest.raises(InvalidInputError):
        tree.update_measurements(height=-5, now=NOW)
    assert tree.height == 40
    assert tree.tree_score == 40 * 100 + 64


def test_tree_trim_and_remeasure():
    tree = Tree(latitude=0, longitude=0, species="Pine", dbh=10, height=40, canopy_radius=8)
    tree.set_trim_percentage(50, now=NOW)
    assert tree.trim_score == pytest.approx(40 * 10 * 64 * 0.5)
    tree.update_measurements(dbh=12, now=NOW)
    assert tree.tree_score == 40 * 144 + 64
    assert tree.trim_score == pytest.approx(40 * 12 * 64 * 0.5)


def test_tree_work_history_and_removal():
    tree = Tree(latitude=0, longitude=0, species="Pine", dbh=10, height=40, canopy_radius=8, common_name="Slash pine")
    tree.add_work_record(ServiceType.TREE_TRIMMING, NOW, revenue=450, now=NOW)
    assert tree.has_been_worked
    assert tree.total_revenue == 450
    assert tree.display_name == "Slash pine"

    tree.mark_removed(NOW, now=NOW)
    assert tree.is_removed
    assert tree.health_status is TreeHealthStatus.REMOVED
    with pytest.raises(InvalidInputError):
        tree.add_work_record(ServiceType.TREE_TRIMMING, NOW)


def test_tree_condition_rating_range():
    with pytest.raises(InvalidInputError):
        Tree(latitude=0, longitude=0, species="Pine", dbh=10, height=40, canopy_radius=8, condition_rating=6)


# ----------------------------------------------------
# Employee
# ----------------------------------------------------
def _employee(**kw):
    params = dict(
        first_name="Sam",
        last_name="Reyes",
        phone_number="555-0199",
        hire_date=NOW - timedelta(days=400),
        primary_track=CareerTrack.TRS,
        base_hourly_rate=15.0,
        tier=1,
        now=NOW,
    )
    params.update(kw)
    return Employee(**params)


def test_employee_wage_cached_on_create():
    emp = _employee(has_supervisor=True, equipment_level=3, has_crane_cert=True)
    assert emp.total_hourly_wage == pytest.approx(39.00)
    assert emp.labor_burden_multiplier == 1.6
    assert emp.true_business_cost == pytest.approx(62.4)


def test_employee_update_compensation_is_atomic():
    emp = _employee()
    with pytest.raises(InvalidInputError):
        emp.update_compensation(tier=3, equipment_level=9, now=NOW)
    assert emp.tier == 1
    assert emp.total_hourly_wage == pytest.approx(24.0)

    assert emp.update_compensation(tier=3, now=NOW) == pytest.approx(27.0)
    assert emp.true_business_cost == pytest.approx(27.0 * 1.8)


def test_employee_rejects_unknown_tier_and_fields():
    with pytest.raises(InvalidInputError):
        _employee(tier=6)
    with pytest.raises(InvalidInputError):
        _employee().update_compensation(shoe_size=11)


def test_employee_code():
    emp = _employee(tier=3, has_supervisor=True, equipment_level=3, driver_class=2, has_crane_cert=True)
    emp.add_cross_training(CareerTrack.ESR, 3, now=NOW)
    assert emp.employee_code == "TRS3+S+E3+D2+CRA / X-ESR3"


def test_employee_pph():
    emp = _employee()
    emp.record_hours(4, points=2000, now=NOW)
    emp.record_hours(4, points=1000, job_completed=True, now=NOW)
    assert emp.total_hours_worked == 8
    assert emp.average_pph == 375
    assert emp.jobs_completed == 1


# ----------------------------------------------------
# Equipment
# ----------------------------------------------------
def _equipment(**kw):
    params = dict(
        equipment_name="Bandit 250XP",
        equipment_type=EquipmentType.CHIPPER,
        purchase_price=115_000,
        purchase_date=datetime(2023, 1, 15, tzinfo=timezone.utc),
        annual_usage_hours=1200,
        fuel_consumption_gph=14,
        fuel_price_per_gallon=3.50,
        now=NOW,
    )
    params.update(kw)
    return Equipment(**params)


def test_equipment_costs_use_configured_defaults():
    eq = _equipment()
    assert eq.depreciation_years == 5
    assert eq.annual_maintenance_pct == 0.15
    assert eq.total_hourly_cost == pytest.approx(82.54, abs=0.01)
    assert eq.daily_revenue_requirement == pytest.approx(eq.minimum_billing_rate * 1200 / 200)


def test_equipment_rejects_zero_hours_without_writing():
    eq = _equipment()
    before = eq.total_hourly_cost
    with pytest.raises(InvalidInputError):
        eq.update_cost_inputs(annual_usage_hours=0, now=NOW)
    assert eq.total_hourly_cost == before
    assert eq.annual_usage_hours == 1200


def test_equipment_replacement_reasons_are_reevaluated():
    eq = _equipment()
    # 14.375/hr maintenance is over the 12.00 threshold
    assert eq.should_consider_replacement
    assert len(eq.replacement_trigger_notes) == 1

    eq.log_usage(10, used_at=NOW, now=NOW)
    assert len(eq.replacement_trigger_notes) == 2
    assert eq.utilization_rate == pytest.approx(10 / 1200)

    eq.update_cost_inputs(annual_maintenance_pct=0.05, now=NOW)
    eq.reset_annual_usage(now=NOW)
    assert not eq.should_consider_replacement
    assert eq.replacement_trigger_notes == []


def test_equipment_maintenance_history():
    eq = _equipment()
    eq.add_maintenance(NOW, 350.0, "Knife sharpening", next_due_hours=250, now=NOW)
    eq.add_maintenance(NOW, 150.0, "Oil change", now=NOW)
    assert eq.total_maintenance_cost == 500
    assert eq.maintenance_interval_hours == 250


def test_equipment_depreciation_years_must_be_whole():
    with pytest.raises(InvalidInputError):
        _equipment(depreciation_years=2.5)


# ----------------------------------------------------
# Customer & property
# ----------------------------------------------------
def test_customer_jobs_and_vip():
    customer = Customer(customer_name="Dana", phone_number="555", now=NOW)
    customer.add_job(6_000, NOW, now=NOW)
    assert not customer.is_repeat_customer
    customer.add_job(6_000, NOW, now=NOW)
    assert customer.is_repeat_customer
    assert customer.average_job_value == 6_000
    assert customer.is_vip


def test_customer_balance_never_negative():
    customer = Customer(customer_name="Dana", phone_number="555", now=NOW)
    customer.adjust_balance(100, now=NOW)
    customer.adjust_balance(-150, now=NOW)
    assert customer.outstanding_balance == 0.0


def test_customer_rejects_blank_name_and_unknown_link():
    with pytest.raises(InvalidInputError):
        Customer(customer_name="  ", phone_number="555")
    with pytest.raises(InvalidInputError):
        Customer(customer_name="Dana", phone_number="555").link("boat", "x")


def test_property_tree_totals_skip_removed_trees():
    prop = Property(
        property_address="12 Live Oak Ln", city="Gainesville", state="FL", zip_code="32601",
        latitude=29.65, longitude=-82.32, now=NOW,
    )
    standing = Tree(latitude=0, longitude=0, species="Oak", dbh=24, height=60, canopy_radius=15, percent_to_trim=10)
    gone = Tree(latitude=0, longitude=0, species="Pine", dbh=10, height=40, canopy_radius=8)
    gone.mark_removed(NOW)
    for t in (standing, gone):
        prop.add_tree(t.id, now=NOW)
    prop.refresh_tree_totals([standing, gone], now=NOW)
    assert prop.tree_count == 2
    assert prop.total_tree_score == 34_785
    assert prop.total_trim_score == pytest.approx(standing.trim_score)


def test_property_parcel_and_afiss():
    prop = Property(
        property_address="1 Main", city="X", state="FL", zip_code="1", latitude=0, longitude=0, now=NOW,
    )
    with pytest.raises(InvalidInputError):
        prop.set_parcel_boundary([(0, 0), (0, 0.001)])
    prop.set_parcel_boundary([(0, 0), (0, 0.001), (0.001, 0.001), (0.001, 0)], now=NOW)
    assert prop.parcel_area_sq_m == pytest.approx(12_392.1, rel=1e-3)

    assert prop.update_afiss(0.1, 0.05, 0.2, 0.0, 0.05, now=NOW) == pytest.approx(1.4)
    assert prop.has_afiss_assessment


def test_property_jobs():
    prop = Property(
        property_address="1 Main", city="X", state="FL", zip_code="1", latitude=0, longitude=0, now=NOW,
    )
    assert prop.average_revenue_per_job == 0.0
    prop.add_job(900, NOW, now=NOW)
    prop.add_job(300, NOW, now=NOW)
    assert prop.average_revenue_per_job == 600


# ----------------------------------------------------
# Proposal
# ----------------------------------------------------
def test_proposal_rollups_follow_line_items():
    proposal = _proposal(_item(500, hours=12), _item(150, qty=2, hours=8))
    assert proposal.subtotal == 800
    assert proposal.tax_amount == pytest.approx(56)
    assert proposal.total_amount == pytest.approx(856)
    assert [i.item_number for i in proposal.line_items] == [1, 2]

    first = proposal.line_items[0]
    proposal.remove_line_item(first.id, now=NOW)
    assert proposal.subtotal == 300
    assert proposal.line_items[0].item_number == 1

    proposal.update_line_item(proposal.line_items[0].id, quantity=3, now=NOW)
    assert proposal.subtotal == 450


def test_proposal_line_item_validation():
    with pytest.raises(InvalidInputError):
        _item(100, qty=-1)
    with pytest.raises(InvalidInputError):
        _item(100, qty=1.5)
    proposal = _proposal(_item(100))
    with pytest.raises(InvalidInputError):
        proposal.update_line_item(proposal.line_items[0].id, unit_price=-3)
    assert proposal.subtotal == 100
    with pytest.raises(NotFoundError):
        proposal.remove_line_item("nope")


def test_proposal_status_flow():
    proposal = _proposal(_item(100))
    with pytest.raises(InvalidTransitionError):
        proposal.mark_converted("wo-1")

    proposal.mark_sent(now=NOW)
    proposal.mark_viewed(now=NOW + timedelta(hours=1))
    proposal.mark_viewed(now=NOW + timedelta(hours=5))
    assert proposal.status is ProposalStatus.VIEWED
    assert proposal.viewed_at == NOW + timedelta(hours=1)

    proposal.mark_accepted(now=NOW + timedelta(days=1))
    with pytest.raises(InvalidTransitionError):
        proposal.mark_declined()
    with pytest.raises(InvalidTransitionError):
        proposal.add_line_item(_item(50))

    proposal.mark_converted("wo-1", now=NOW)
    with pytest.raises(InvalidTransitionError):
        proposal.mark_converted("wo-2", now=NOW)


def test_proposal_expiry():
    proposal = _proposal(_item(100))
    assert proposal.expires_at == NOW + timedelta(days=30)
    assert not proposal.expire_if_due(NOW + timedelta(days=29))
    assert proposal.expire_if_due(NOW + timedelta(days=31))
    assert proposal.status is ProposalStatus.EXPIRED


# ----------------------------------------------------
# Work order
# ----------------------------------------------------
def _work_order(hours=(12, 8)):
    proposal = _proposal(*[_item(100, hours=h) for h in hours])
    proposal.mark_accepted(now=NOW)
    return WorkOrder.from_proposal(proposal, now=NOW)


def test_work_order_copies_estimates():
    wo = _work_order()
    assert wo.status is WorkOrderStatus.SCHEDULED
    assert wo.estimated_duration == 20
    assert wo.completion_percentage == 0
    assert wo.estimated_total_cost == 200
    assert all(i.status is LineItemStatus.PENDING and i.actual_hours is None for i in wo.line_items)


def test_work_order_completion_is_capped():
    wo = _work_order()
    wo.add_time_entry("t1", 10, 100, 50, now=NOW)
    assert wo.completion_percentage == 50
    assert wo.actual_total_cost == 150
    wo.add_time_entry("t2", 30, 0, 0, now=NOW)
    assert wo.completion_percentage == 100
    with pytest.raises(InvalidInputError):
        wo.add_time_entry("t2", 1, 0, 0, now=NOW)


def test_work_order_without_estimate_keeps_percentage():
    wo = _work_order(hours=(0,))
    wo.add_time_entry("t1", 10, 0, 0, now=NOW)
    assert wo.completion_percentage == 0


def test_work_order_lifecycle():
    wo = _work_order()
    with pytest.raises(InvalidInputError):
        wo.assign_crew(["e1", "e2"], crew_lead_id="e3")
    wo.assign_crew(["e1", "e2", "e1"], crew_lead_id="e1", now=NOW)
    assert wo.crew_size == 2

    wo.start_work(now=NOW)
    wo.add_journal_entry(JournalEntryType.NOTE, "Arrived on site", now=NOW)
    wo.complete_work(now=NOW + timedelta(hours=6))
    assert wo.actual_duration == 6
    with pytest.raises(InvalidTransitionError):
        wo.add_time_entry("late", 1, 0, 0)


# ----------------------------------------------------
# Invoice
# ----------------------------------------------------
def test_invoice_payments():
    wo = _work_order()
    invoice = Invoice.from_work_order(wo, tax_rate=0.07, now=NOW)
    assert invoice.total_amount == pytest.approx(214)
    assert invoice.due_at == NOW + timedelta(days=30)

    assert not invoice.record_payment(100, now=NOW)
    assert invoice.status is InvoiceStatus.PARTIALLY_PAID
    with pytest.raises(InvalidInputError):
        invoice.record_payment(500, now=NOW)
    with pytest.raises(InvalidTransitionError):
        invoice.void()
    assert invoice.record_payment(114, now=NOW)
    assert invoice.is_paid
    assert invoice.balance_due == pytest.approx(0)


def test_invoice_overdue():
    invoice = Invoice.from_work_order(_work_order(), tax_rate=0.0, now=NOW)
    assert invoice.is_overdue(NOW + timedelta(days=31))
    invoice.void("duplicate", now=NOW)
    assert not invoice.is_overdue(NOW + timedelta(days=31))


# ----------------------------------------------------
# Time entry
# ----------------------------------------------------
def test_time_entry_subtracts_pauses():
    entry = TimeEntry(task_type=TaskType.LINE_ITEM, task_category="Tree Removal", now=NOW)
    assert entry.is_billable
    entry.pause(now=NOW + timedelta(hours=2))
    entry.resume(now=NOW + timedelta(hours=3))
    duration = entry.complete(now=NOW + timedelta(hours=5), points_completed=3000, location=(29.6, -82.3))
    assert duration == pytest.approx(4)
    assert entry.pph_achieved == pytest.approx(750)
    assert entry.end_latitude == 29.6
    with pytest.raises(InvalidTransitionError):
        entry.pause()


def test_support_time_is_not_billable():
    entry = TimeEntry(task_type=TaskType.SUPPORT, task_category="Fuel Up", now=NOW)
    assert not entry.is_billable


def test_time_entry_completed_while_paused():
    entry = TimeEntry(task_type=TaskType.SUPPORT, task_category="Transport", now=NOW)
    entry.pause(now=NOW + timedelta(hours=1))
    assert entry.complete(now=NOW + timedelta(hours=2)) == pytest.approx(1)
