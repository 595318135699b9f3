# treeshop/services/proposals.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from treeshop.db import utcnow
from treeshop.domain.enums import ProposalStatus, UrgencyLevel, WorkflowStage
from treeshop.errors import InvalidTransitionError
from treeshop.logging_config import bind_context, get_logger
from treeshop.models.lead import Lead
from treeshop.models.proposal import OPEN_STATUSES, Proposal, ProposalLineItem
from treeshop.models.work_order import WorkOrder
from treeshop.observability.metrics import proposal_status_counter
from treeshop.services import repository
from treeshop.services.links import link_to_owners, owners
from treeshop.services.workflow import advance_if_at

logger = get_logger(__name__)

# lead stages at which a new proposal may be drafted
PROPOSABLE_STAGES = (WorkflowStage.LEAD, WorkflowStage.PROPOSAL)


def _status_changed(proposal: Proposal, event: str, **extra) -> None:
    proposal_status_counter.labels(status=proposal.status.value).inc()
    logger.info(event, proposal_id=proposal.id, status=proposal.status.value, **extra)


def create_proposal_for_lead(
    db: Session,
    lead_id: str,
    line_items: Iterable[Dict[str, Any]] = (),
    tax_rate: Optional[float] = None,
    now: Optional[datetime] = None,
    **fields,
) -> Proposal:
    """
    Draft a proposal from a lead. A lead still at LEAD moves to PROPOSAL;
    the property's AFISS multiplier is carried over when assessed.
    """
    now = now or utcnow()
    lead = repository.get(db, Lead, lead_id)
    if lead.is_archived:
        raise InvalidTransitionError("archived leads cannot receive proposals", meta={"lead_id": lead.id})
    if lead.current_stage not in PROPOSABLE_STAGES:
        raise InvalidTransitionError(
            f"lead is past the proposal stage ({lead.current_stage.value})",
            meta={"lead_id": lead.id, "stage": lead.current_stage.value},
        )

    _, prop = owners(db, lead.customer_id, lead.property_id)
    if prop is not None and prop.afiss_multiplier is not None:
        fields.setdefault("afiss_multiplier", prop.afiss_multiplier)

    items = [ProposalLineItem(**item) for item in line_items]
    proposal = Proposal.for_lead(lead, line_items=items, tax_rate=tax_rate, now=now, **fields)

    with bind_context(lead_id=lead.id, proposal_id=proposal.id):
        db.add(proposal)
        link_to_owners(db, "proposal", proposal.id, lead.customer_id, lead.property_id, now=now)
        advance_if_at(db, lead.id, WorkflowStage.LEAD, "Proposal drafted", now=now)
        repository.commit(db)
        db.refresh(proposal)
        totals = proposal.totals
        logger.info(
            "proposal_created",
            proposal_number=proposal.proposal_number,
            line_items=len(proposal.line_items),
            subtotal=totals.subtotal,
            total_amount=totals.total_amount,
        )
    return proposal


def get_proposal(db: Session, proposal_id: str) -> Proposal:
    return repository.get(db, Proposal, proposal_id)


def proposals_for_lead(db: Session, lead_id: str) -> List[Proposal]:
    return repository.list_where(db, Proposal, Proposal.lead_id == lead_id, order_by=Proposal.created_at.asc())


# ----------------------------------------------------
# Line items
# ----------------------------------------------------
def add_line_item(db: Session, proposal_id: str, now: Optional[datetime] = None, **fields) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    item = ProposalLineItem(**fields)
    proposal = repository.update(db, proposal, lambda p: p.add_line_item(item, now=now))
    logger.info("proposal_line_item_added", proposal_id=proposal.id, subtotal=proposal.subtotal)
    return proposal


def remove_line_item(db: Session, proposal_id: str, item_id: str, now: Optional[datetime] = None) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    proposal = repository.update(db, proposal, lambda p: p.remove_line_item(item_id, now=now))
    logger.info("proposal_line_item_removed", proposal_id=proposal.id, subtotal=proposal.subtotal)
    return proposal


def update_line_item(
    db: Session,
    proposal_id: str,
    item_id: str,
    now: Optional[datetime] = None,
    **changes,
) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    return repository.update(db, proposal, lambda p: p.update_line_item(item_id, now=now, **changes))


def set_tax_rate(db: Session, proposal_id: str, tax_rate: float, now: Optional[datetime] = None) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    return repository.update(db, proposal, lambda p: p.set_tax_rate(tax_rate, now=now))


# ----------------------------------------------------
# Status
# ----------------------------------------------------
def send_proposal(db: Session, proposal_id: str, now: Optional[datetime] = None) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    proposal = repository.update(db, proposal, lambda p: p.mark_sent(now=now))
    _status_changed(proposal, "proposal_sent")
    return proposal


def view_proposal(db: Session, proposal_id: str, now: Optional[datetime] = None) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    first_view = proposal.viewed_at is None
    proposal = repository.update(db, proposal, lambda p: p.mark_viewed(now=now))
    if first_view:
        _status_changed(proposal, "proposal_viewed")
    return proposal


def decline_proposal(
    db: Session,
    proposal_id: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Proposal:
    proposal = get_proposal(db, proposal_id)
    proposal = repository.update(db, proposal, lambda p: p.mark_declined(reason=reason, now=now))
    _status_changed(proposal, "proposal_declined", reason=reason)
    return proposal


def accept_proposal(
    db: Session,
    proposal_id: str,
    now: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> Tuple[Proposal, WorkOrder]:
    """
    Accept and convert in one unit of work: the proposal is marked
    accepted, a work order is created from its line items, and the lead
    moves PROPOSAL -> WORK_ORDER.
    """
    now = now or utcnow()
    proposal = get_proposal(db, proposal_id)
    repository.check_version(proposal, expected_version)
    lead = db.get(Lead, proposal.lead_id)

    with bind_context(lead_id=proposal.lead_id, proposal_id=proposal.id):
        try:
            proposal.mark_accepted(now=now)
            work_order = WorkOrder.from_proposal(
                proposal,
                priority=lead.urgency_level if lead is not None else UrgencyLevel.MEDIUM,
                job_description=lead.project_description if lead is not None else "",
                now=now,
            )
            db.add(work_order)
            db.flush()
            proposal.mark_converted(work_order.id, now=now)
            link_to_owners(db, "work_order", work_order.id, proposal.customer_id, proposal.property_id, now=now)
            advance_if_at(db, proposal.lead_id, WorkflowStage.PROPOSAL, "Proposal accepted", now=now)
        except Exception:
            db.rollback()
            raise
        repository.commit(db)
        db.refresh(proposal)
        db.refresh(work_order)

        _status_changed(proposal, "proposal_accepted", work_order_id=work_order.id)
        logger.info(
            "work_order_created",
            work_order_id=work_order.id,
            work_order_number=work_order.work_order_number,
            estimated_duration=work_order.estimated_duration,
        )
    return proposal, work_order


def expire_due_proposals(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    candidates = repository.list_where(db, Proposal, Proposal.status.in_(list(OPEN_STATUSES)))
    expired = [p for p in candidates if p.expire_if_due(now)]
    if expired:
        repository.commit(db)
        for p in expired:
            _status_changed(p, "proposal_expired")
    return len(expired)


def proposals_by_status(db: Session, status: ProposalStatus) -> List[Proposal]:
    return repository.list_where(
        db, Proposal, Proposal.status == ProposalStatus(status), order_by=Proposal.created_at.desc()
    )
