# treeshop/services/workflow.py
"""
Lead workflow: the sanctioned entry points for stage changes plus the
read-side queries and pipeline statistics.

Stage changes happen only through Lead.advance / Lead.set_stage, which
append to the lead's history; these wrappers add persistence, logging
and metrics.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from treeshop.db import utcnow
from treeshop.domain.enums import ContactMethod, LeadSource, UrgencyLevel, WorkflowStage
from treeshop.logging_config import bind_context, get_logger
from treeshop.models.lead import TRANSITION_ADVANCE, TRANSITION_OVERRIDE, Lead
from treeshop.observability.metrics import stage_transition_counter
from treeshop.services import repository
from treeshop.services.links import link_to_owners

logger = get_logger(__name__)


# ----------------------------------------------------
# Mutations
# ----------------------------------------------------
def create_lead(db: Session, now: Optional[datetime] = None, **fields) -> Lead:
    lead = Lead(now=now, **fields)
    customer, _ = link_to_owners(db, "lead", lead.id, lead.customer_id, lead.property_id, now=now)
    if customer is not None:
        lead.is_existing_customer = True
        lead.is_repeat_customer = customer.is_repeat_customer
    lead = repository.create(db, lead)
    logger.info(
        "lead_created",
        lead_id=lead.id,
        source=lead.lead_source.value,
        urgency=lead.urgency_level.value,
    )
    return lead


def _record_transition(lead: Lead, kind: str) -> None:
    last = lead.stage_history[-1]
    from_stage = last.from_stage.value if last.from_stage else "NONE"
    stage_transition_counter.labels(from_stage=from_stage, to_stage=last.to_stage.value, kind=kind).inc()


def advance_stage(
    db: Session,
    lead_id: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> Lead:
    lead = repository.get(db, Lead, lead_id)
    with bind_context(lead_id=lead.id):
        before = lead.current_stage
        lead = repository.update(db, lead, lambda ld: ld.advance(notes=notes, now=now), expected_version)
        _record_transition(lead, TRANSITION_ADVANCE)
        logger.info("lead_stage_advanced", from_stage=before.value, to_stage=lead.current_stage.value)
    return lead


def advance_if_at(db: Session, lead_id: str, stage: WorkflowStage, notes: str, now: Optional[datetime] = None) -> bool:
    """
    Move a lead one step forward only when it sits at `stage`.
    Used by downstream records (proposal, work order, invoice) so a lead
    that was moved by hand is left alone.
    """
    lead = db.get(Lead, lead_id)
    if lead is None or lead.is_archived or lead.current_stage is not stage:
        return False
    lead.advance(notes=notes, now=now)
    _record_transition(lead, TRANSITION_ADVANCE)
    logger.info(
        "lead_stage_advanced",
        lead_id=lead.id,
        from_stage=stage.value,
        to_stage=lead.current_stage.value,
        reason=notes,
    )
    return True


def set_stage(
    db: Session,
    lead_id: str,
    stage: WorkflowStage,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> Lead:
    """Administrative override; still recorded in stage history."""
    lead = repository.get(db, Lead, lead_id)
    with bind_context(lead_id=lead.id):
        before = lead.current_stage
        lead = repository.update(db, lead, lambda ld: ld.set_stage(stage, notes=notes, now=now), expected_version)
        _record_transition(lead, TRANSITION_OVERRIDE)
        logger.warning("lead_stage_overridden", from_stage=before.value, to_stage=lead.current_stage.value, notes=notes)
    return lead


def archive_lead(
    db: Session,
    lead_id: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> Lead:
    lead = repository.get(db, Lead, lead_id)
    lead = repository.archive(db, lead, reason=reason, now=now, expected_version=expected_version)
    logger.info("lead_archived", lead_id=lead.id, reason=reason)
    return lead


def log_contact(
    db: Session,
    lead_id: str,
    method: ContactMethod,
    notes: Optional[str] = None,
    next_follow_up_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Lead:
    lead = repository.get(db, Lead, lead_id)
    lead = repository.update(
        db,
        lead,
        lambda ld: ld.log_contact(method, notes=notes, next_follow_up_at=next_follow_up_at, now=now),
    )
    logger.info("lead_contacted", lead_id=lead.id, method=ContactMethod(method).value, attempts=lead.attempt_count)
    return lead


# ----------------------------------------------------
# Queries
# ----------------------------------------------------
def _base_query(db: Session, include_archived: bool = False):
    q = db.query(Lead)
    if not include_archived:
        q = q.filter(Lead.is_archived.is_(False))
    return q


def leads_by_stage(db: Session, stage: WorkflowStage, include_archived: bool = False) -> List[Lead]:
    return (
        _base_query(db, include_archived)
        .filter(Lead.workflow_stage == WorkflowStage(stage))
        .order_by(Lead.created_at.desc())
        .all()
    )


def active_leads(db: Session) -> List[Lead]:
    return (
        _base_query(db)
        .filter(Lead.is_active.is_(True))
        .order_by(Lead.created_at.desc())
        .all()
    )


def overdue_leads(db: Session, now: Optional[datetime] = None) -> List[Lead]:
    now = now or utcnow()
    return (
        _base_query(db)
        .filter(Lead.is_active.is_(True))
        .filter(Lead.next_follow_up_at.is_not(None))
        .filter(Lead.next_follow_up_at < now)
        .order_by(Lead.next_follow_up_at.asc())
        .all()
    )


def leads_by_urgency(db: Session, urgency: UrgencyLevel) -> List[Lead]:
    return (
        _base_query(db)
        .filter(Lead.urgency_level == UrgencyLevel(urgency))
        .order_by(Lead.created_at.desc())
        .all()
    )


def leads_needing_site_visit(db: Session) -> List[Lead]:
    return (
        _base_query(db)
        .filter(Lead.needs_site_visit.is_(True))
        .filter(Lead.site_visit_completed_at.is_(None))
        .order_by(Lead.created_at.desc())
        .all()
    )


def search_leads(db: Session, text: str, include_archived: bool = False) -> List[Lead]:
    """Case-insensitive substring match on name and address; phone matched as typed."""
    text = (text or "").strip()
    if not text:
        return []
    pattern = f"%{text.lower()}%"
    return (
        _base_query(db, include_archived)
        .filter(
            or_(
                func.lower(Lead.customer_name).like(pattern),
                func.lower(Lead.property_address).like(pattern),
                Lead.customer_phone.contains(text, autoescape=True),
            )
        )
        .order_by(Lead.created_at.desc())
        .all()
    )


# ----------------------------------------------------
# Statistics (over every lead, archived included)
# ----------------------------------------------------
def conversion_rate(db: Session) -> float:
    total = db.query(func.count(Lead.id)).scalar() or 0
    if total == 0:
        return 0.0
    converted = db.query(func.count(Lead.id)).filter(Lead.is_converted.is_(True)).scalar() or 0
    return converted / total * 100


def average_response_time(db: Session) -> Optional[timedelta]:
    contacted = db.query(Lead).filter(Lead.last_contact_at.is_not(None)).all()
    if not contacted:
        return None
    total = sum(((ld.last_contact_at - ld.created_at) for ld in contacted), timedelta())
    return total / len(contacted)


def lead_count_by_source(db: Session) -> Dict[LeadSource, int]:
    rows = db.query(Lead.lead_source, func.count(Lead.id)).group_by(Lead.lead_source).all()
    return {LeadSource(source): count for source, count in rows}
