# treeshop/routers/leads.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from treeshop.db import get_db
from treeshop.domain.enums import UrgencyLevel, WorkflowStage
from treeshop.models.lead import Lead
from treeshop.schemas.leads import (
    AdvanceRequest,
    ArchiveRequest,
    ContactRequest,
    LeadCreate,
    LeadOut,
    LeadStats,
    SetStageRequest,
)
from treeshop.services import repository, workflow

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("", response_model=LeadOut, status_code=201)
def create_lead(body: LeadCreate, db: Session = Depends(get_db)):
    return workflow.create_lead(db, **body.model_dump(exclude_none=True))


@router.get("", response_model=List[LeadOut])
def list_leads(
    stage: Optional[WorkflowStage] = None,
    urgency: Optional[UrgencyLevel] = None,
    overdue: bool = False,
    needs_site_visit: bool = False,
    q: Optional[str] = Query(None, description="Name, address or phone fragment"),
    db: Session = Depends(get_db),
):
    # one filter at a time, most specific first
    if q:
        return workflow.search_leads(db, q)
    if stage is not None:
        return workflow.leads_by_stage(db, stage)
    if urgency is not None:
        return workflow.leads_by_urgency(db, urgency)
    if overdue:
        return workflow.overdue_leads(db)
    if needs_site_visit:
        return workflow.leads_needing_site_visit(db)
    return workflow.active_leads(db)


@router.get("/stats", response_model=LeadStats)
def lead_stats(db: Session = Depends(get_db)):
    avg = workflow.average_response_time(db)
    return LeadStats(
        conversion_rate=workflow.conversion_rate(db),
        average_response_hours=None if avg is None else avg.total_seconds() / 3600.0,
        by_source=workflow.lead_count_by_source(db),
    )


@router.get("/{lead_id}", response_model=LeadOut)
def get_lead(lead_id: str, db: Session = Depends(get_db)):
    return repository.get(db, Lead, lead_id)


@router.post("/{lead_id}/advance", response_model=LeadOut)
def advance_lead(lead_id: str, body: AdvanceRequest = AdvanceRequest(), db: Session = Depends(get_db)):
    return workflow.advance_stage(db, lead_id, notes=body.notes, expected_version=body.expected_version)


@router.post("/{lead_id}/stage", response_model=LeadOut)
def set_lead_stage(lead_id: str, body: SetStageRequest, db: Session = Depends(get_db)):
    return workflow.set_stage(db, lead_id, body.stage, notes=body.notes, expected_version=body.expected_version)


@router.post("/{lead_id}/archive", response_model=LeadOut)
def archive_lead(lead_id: str, body: ArchiveRequest = ArchiveRequest(), db: Session = Depends(get_db)):
    return workflow.archive_lead(db, lead_id, reason=body.reason, expected_version=body.expected_version)


@router.post("/{lead_id}/contact", response_model=LeadOut)
def log_contact(lead_id: str, body: ContactRequest, db: Session = Depends(get_db)):
    return workflow.log_contact(
        db,
        lead_id,
        body.method,
        notes=body.notes,
        next_follow_up_at=body.next_follow_up_at,
    )
