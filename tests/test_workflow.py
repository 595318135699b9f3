from datetime import datetime, timedelta

import pytest

from treeshop.domain.enums import ContactMethod, LeadSource, UrgencyLevel, WorkflowStage
from treeshop.errors import ConcurrencyConflictError, InvalidInputError, InvalidTransitionError, NotFoundError
from treeshop.models.lead import TRANSITION_CREATED, TRANSITION_OVERRIDE, Lead
from treeshop.services import repository, workflow


def test_new_lead_starts_with_one_history_entry(make_lead, now):
    lead = make_lead()
    assert lead.current_stage is WorkflowStage.LEAD
    assert lead.workflow_stage is WorkflowStage.LEAD
    assert len(lead.stage_history) == 1
    assert lead.stage_history[0].kind == TRANSITION_CREATED
    assert lead.stage_history[0].from_stage is None
    assert lead.next_follow_up_at == now + timedelta(days=1)


def test_advance_walks_the_pipeline(db, make_lead, now):
    lead = make_lead()
    lead = workflow.advance_stage(db, lead.id, notes="Quoted on site", now=now)
    assert lead.current_stage is WorkflowStage.PROPOSAL
    assert lead.is_converted
    assert len(lead.stage_history) == 2

    for _ in range(3):
        lead = workflow.advance_stage(db, lead.id, now=now)
    assert lead.current_stage is WorkflowStage.COMPLETED
    assert [t.to_stage for t in lead.stage_history][-1] is lead.current_stage

    with pytest.raises(InvalidTransitionError):
        workflow.advance_stage(db, lead.id, now=now)
    assert len(repository.get(db, Lead, lead.id).stage_history) == 5


def test_set_stage_is_recorded_as_override(db, make_lead, now):
    lead = make_lead()
    lead = workflow.set_stage(db, lead.id, WorkflowStage.INVOICE, notes="Imported job", now=now)
    assert lead.current_stage is WorkflowStage.INVOICE
    assert lead.stage_history[-1].kind == TRANSITION_OVERRIDE
    assert lead.stage_history[-1].from_stage is WorkflowStage.LEAD


def test_history_entries_cannot_be_edited(db, make_lead):
    lead = make_lead()
    lead.stage_history[0].notes = "rewritten"
    with pytest.raises(InvalidTransitionError):
        db.commit()
    db.rollback()


def test_stale_version_is_rejected(db, make_lead, now):
    lead = make_lead()
    version = lead.version_id
    workflow.advance_stage(db, lead.id, now=now, expected_version=version)
    with pytest.raises(ConcurrencyConflictError):
        workflow.advance_stage(db, lead.id, now=now, expected_version=version)


def test_archived_lead_cannot_advance_and_drops_out_of_queries(db, make_lead, now):
    lead = make_lead()
    other = make_lead(customer_name="Lee Park")
    workflow.archive_lead(db, lead.id, reason="Went with another company", now=now)

    with pytest.raises(InvalidTransitionError):
        workflow.advance_stage(db, lead.id, now=now)
    assert [ld.id for ld in workflow.active_leads(db)] == [other.id]
    assert [ld.id for ld in workflow.leads_by_stage(db, WorkflowStage.LEAD)] == [other.id]
    assert len(workflow.leads_by_stage(db, WorkflowStage.LEAD, include_archived=True)) == 2


def test_archived_lead_rejects_stage_override(db, make_lead, now):
    lead = make_lead()
    workflow.archive_lead(db, lead.id, now=now)

    with pytest.raises(InvalidTransitionError):
        workflow.set_stage(db, lead.id, WorkflowStage.INVOICE, now=now)
    lead = repository.get(db, Lead, lead.id)
    assert lead.current_stage is WorkflowStage.LEAD
    assert len(lead.stage_history) == 1
    assert not lead.is_converted


def test_unknown_lead_is_not_found(db, now):
    with pytest.raises(NotFoundError):
        workflow.advance_stage(db, "missing", now=now)


def test_overdue_and_contact(db, make_lead, now):
    lead = make_lead()
    later = now + timedelta(days=2)
    assert [ld.id for ld in workflow.overdue_leads(db, now=later)] == [lead.id]

    lead = workflow.log_contact(db, lead.id, ContactMethod.PHONE, notes="Left voicemail", now=now + timedelta(hours=3))
    assert lead.attempt_count == 1
    assert lead.next_follow_up_at is None
    assert workflow.overdue_leads(db, now=later) == []


def test_follow_up_without_offset_is_rejected(db, make_lead, now):
    lead = make_lead()
    with pytest.raises(InvalidInputError):
        workflow.log_contact(db, lead.id, ContactMethod.PHONE, next_follow_up_at=datetime(2026, 1, 1, 10, 0), now=now)
    lead = repository.get(db, Lead, lead.id)
    assert lead.attempt_count == 0
    with pytest.raises(InvalidInputError):
        lead.schedule_site_visit(datetime(2026, 1, 2, 9, 0))


def test_urgency_site_visit_and_search(db, make_lead, now):
    storm = make_lead(customer_name="Ana Ortiz", urgency_level=UrgencyLevel.EMERGENCY, customer_phone="352-555-7788")
    make_lead(needs_site_visit=False, property_address="400 Magnolia Ave")

    assert [ld.id for ld in workflow.leads_by_urgency(db, UrgencyLevel.EMERGENCY)] == [storm.id]
    assert [ld.id for ld in workflow.leads_needing_site_visit(db)] == [storm.id]
    assert [ld.id for ld in workflow.search_leads(db, "ortiz")] == [storm.id]
    assert [ld.id for ld in workflow.search_leads(db, "555-77")] == [storm.id]
    assert len(workflow.search_leads(db, "magnolia")) == 1
    assert workflow.search_leads(db, "   ") == []


def test_stats(db, make_lead, now):
    assert workflow.conversion_rate(db) == 0.0
    assert workflow.average_response_time(db) is None

    first = make_lead()
    make_lead(lead_source=LeadSource.GOOGLE)
    make_lead(lead_source=LeadSource.GOOGLE)
    workflow.advance_stage(db, first.id, now=now)
    workflow.log_contact(db, first.id, ContactMethod.TEXT, now=now + timedelta(hours=2))

    assert workflow.conversion_rate(db) == pytest.approx(100 / 3)
    assert workflow.average_response_time(db) == timedelta(hours=2)
    assert workflow.lead_count_by_source(db) == {LeadSource.REFERRAL: 1, LeadSource.GOOGLE: 2}


def test_lead_links_to_existing_customer(db, make_lead, customer_and_property):
    customer, prop = customer_and_property
    lead = make_lead(customer_id=customer.id, property_id=prop.id)
    assert lead.is_existing_customer
    db.refresh(customer)
    db.refresh(prop)
    assert lead.id in customer.linked_lead_ids
    assert lead.id in prop.lead_ids


def test_lead_with_dangling_customer_is_rejected(make_lead):
    with pytest.raises(NotFoundError):
        make_lead(customer_id="no-such-customer")
