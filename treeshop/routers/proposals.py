# treeshop/routers/proposals.py
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from treeshop.db import get_db
from treeshop.schemas.proposals import (
    AcceptRequest,
    DeclineRequest,
    LineItemIn,
    ProposalCreate,
    ProposalOut,
)
from treeshop.schemas.work_orders import WorkOrderOut
from treeshop.services import proposals

router = APIRouter(tags=["proposals"])


class AcceptResponse(BaseModel):
    proposal: ProposalOut
    work_order: WorkOrderOut


@router.post("/leads/{lead_id}/proposals", response_model=ProposalOut, status_code=201)
def create_proposal(lead_id: str, body: ProposalCreate, db: Session = Depends(get_db)):
    extra = {"proposal_notes": body.proposal_notes} if body.proposal_notes else {}
    return proposals.create_proposal_for_lead(
        db,
        lead_id,
        line_items=[item.model_dump() for item in body.line_items],
        tax_rate=body.tax_rate,
        **extra,
    )


@router.get("/leads/{lead_id}/proposals", response_model=List[ProposalOut])
def list_proposals(lead_id: str, db: Session = Depends(get_db)):
    return proposals.proposals_for_lead(db, lead_id)


@router.get("/proposals/{proposal_id}", response_model=ProposalOut)
def get_proposal(proposal_id: str, db: Session = Depends(get_db)):
    return proposals.get_proposal(db, proposal_id)


@router.post("/proposals/{proposal_id}/line-items", response_model=ProposalOut, status_code=201)
def add_line_item(proposal_id: str, body: LineItemIn, db: Session = Depends(get_db)):
    return proposals.add_line_item(db, proposal_id, **body.model_dump())


@router.delete("/proposals/{proposal_id}/line-items/{item_id}", response_model=ProposalOut)
def remove_line_item(proposal_id: str, item_id: str, db: Session = Depends(get_db)):
    return proposals.remove_line_item(db, proposal_id, item_id)


@router.post("/proposals/{proposal_id}/send", response_model=ProposalOut)
def send_proposal(proposal_id: str, db: Session = Depends(get_db)):
    return proposals.send_proposal(db, proposal_id)


@router.post("/proposals/{proposal_id}/view", response_model=ProposalOut)
def view_proposal(proposal_id: str, db: Session = Depends(get_db)):
    return proposals.view_proposal(db, proposal_id)


@router.post("/proposals/{proposal_id}/accept", response_model=AcceptResponse)
def accept_proposal(proposal_id: str, body: AcceptRequest = AcceptRequest(), db: Session = Depends(get_db)):
    proposal, work_order = proposals.accept_proposal(db, proposal_id, expected_version=body.expected_version)
    return AcceptResponse(
        proposal=ProposalOut.model_validate(proposal),
        work_order=WorkOrderOut.model_validate(work_order),
    )


@router.post("/proposals/{proposal_id}/decline", response_model=ProposalOut)
def decline_proposal(proposal_id: str, body: DeclineRequest = DeclineRequest(), db: Session = Depends(get_db)):
    return proposals.decline_proposal(db, proposal_id, reason=body.reason)
