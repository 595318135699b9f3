from datetime import timedelta

import pytest

from treeshop.domain.enums import ProposalStatus, ServiceType, WorkflowStage
from treeshop.errors import InvalidInputError, InvalidTransitionError
from treeshop.models import Lead, Proposal
from treeshop.services import proposals, repository, workflow

ITEMS = [
    dict(service_type=ServiceType.TREE_REMOVAL, quantity=1, unit_price=500, estimated_hours=12, labor_cost=250),
    dict(service_type=ServiceType.STUMP_GRINDING, quantity=2, unit_price=150, estimated_hours=8, equipment_cost=80),
]


def test_create_proposal_moves_lead_to_proposal(db, make_lead, now):
    lead = make_lead()
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, tax_rate=0.07, now=now)

    assert proposal.status is ProposalStatus.DRAFT
    assert proposal.proposal_number.startswith("PROP-20250303-")
    assert proposal.subtotal == 800
    assert proposal.total_amount == pytest.approx(856)
    assert proposal.estimated_duration == 20
    assert proposal.profit_margin == pytest.approx((800 - 330) / 330)
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.PROPOSAL


def test_second_proposal_leaves_stage_alone(db, make_lead, now):
    lead = make_lead()
    proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS[:1], now=now)
    lead = repository.get(db, Lead, lead.id)
    assert len(lead.stage_history) == 2
    assert len(proposals.proposals_for_lead(db, lead.id)) == 2


def test_default_tax_rate_comes_from_settings(db, make_lead, now):
    proposal = proposals.create_proposal_for_lead(db, make_lead().id, line_items=ITEMS, now=now)
    assert proposal.tax_rate == 0.0


def test_bad_line_item_creates_nothing(db, make_lead, now):
    lead = make_lead()
    bad = ITEMS + [dict(service_type=ServiceType.TREE_TRIMMING, quantity=1, unit_price=-10)]
    with pytest.raises(InvalidInputError):
        proposals.create_proposal_for_lead(db, lead.id, line_items=bad, now=now)
    assert db.query(Proposal).count() == 0
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.LEAD


def test_lead_past_proposal_stage_is_rejected(db, make_lead, now):
    lead = make_lead()
    workflow.set_stage(db, lead.id, WorkflowStage.WORK_ORDER, now=now)
    with pytest.raises(InvalidTransitionError):
        proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)


def test_afiss_multiplier_copied_from_property(db, make_lead, customer_and_property, now):
    customer, prop = customer_and_property
    prop.update_afiss(0.1, 0.0, 0.2, 0.0, 0.0, now=now)
    db.commit()
    lead = make_lead(customer_id=customer.id, property_id=prop.id)
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    assert proposal.afiss_multiplier == pytest.approx(1.3)
    db.refresh(customer)
    assert proposal.id in customer.linked_proposal_ids


def test_line_item_edits_update_totals(db, make_lead, now):
    proposal = proposals.create_proposal_for_lead(db, make_lead().id, line_items=ITEMS, tax_rate=0.1, now=now)
    proposal = proposals.add_line_item(
        db, proposal.id, service_type=ServiceType.TREE_ASSESSMENT, quantity=1, unit_price=200, now=now
    )
    assert proposal.subtotal == 1000
    assert [i.item_number for i in proposal.line_items] == [1, 2, 3]

    second = proposal.line_items[1]
    proposal = proposals.update_line_item(db, proposal.id, second.id, quantity=1, now=now)
    assert proposal.subtotal == 850

    proposal = proposals.remove_line_item(db, proposal.id, proposal.line_items[0].id, now=now)
    assert proposal.subtotal == 350
    assert [i.item_number for i in proposal.line_items] == [1, 2]

    proposal = proposals.set_tax_rate(db, proposal.id, 0.0, now=now)
    assert proposal.total_amount == 350


def test_send_view_decline(db, make_lead, now):
    proposal = proposals.create_proposal_for_lead(db, make_lead().id, line_items=ITEMS, now=now)
    proposal = proposals.send_proposal(db, proposal.id, now=now)
    proposal = proposals.view_proposal(db, proposal.id, now=now + timedelta(hours=1))
    proposal = proposals.view_proposal(db, proposal.id, now=now + timedelta(hours=2))
    assert proposal.viewed_at == now + timedelta(hours=1)

    proposal = proposals.decline_proposal(db, proposal.id, reason="Too expensive", now=now)
    assert proposal.status is ProposalStatus.DECLINED
    with pytest.raises(InvalidTransitionError):
        proposals.accept_proposal(db, proposal.id, now=now)
    assert db.query(Proposal).filter_by(id=proposal.id).one().work_order_id is None


def test_accept_converts_once(db, make_lead, now):
    lead = make_lead()
    proposal = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    proposal, work_order = proposals.accept_proposal(db, proposal.id, now=now)

    assert proposal.status is ProposalStatus.ACCEPTED
    assert proposal.work_order_id == work_order.id
    assert work_order.priority is lead.urgency_level
    assert [i.estimated_cost for i in work_order.line_items] == [500, 300]
    assert repository.get(db, Lead, lead.id).current_stage is WorkflowStage.WORK_ORDER

    with pytest.raises(InvalidTransitionError):
        proposals.accept_proposal(db, proposal.id, now=now)


def test_expire_due_proposals(db, make_lead, now):
    lead = make_lead()
    stale = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now)
    fresh = proposals.create_proposal_for_lead(db, lead.id, line_items=ITEMS, now=now + timedelta(days=20))

    assert proposals.expire_due_proposals(db, now=now + timedelta(days=35)) == 1
    assert [p.id for p in proposals.proposals_by_status(db, ProposalStatus.EXPIRED)] == [stale.id]
    assert proposals.get_proposal(db, fresh.id).status is ProposalStatus.DRAFT
