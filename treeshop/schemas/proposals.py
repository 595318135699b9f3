# treeshop/schemas/proposals.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from treeshop.domain.enums import ProposalStatus, ServiceType


class LineItemIn(BaseModel):
    service_type: ServiceType
    description: str = ""
    quantity: int
    unit_of_measure: str = "each"
    unit_price: float
    labor_cost: float = 0.0
    equipment_cost: float = 0.0
    material_cost: float = 0.0
    estimated_hours: float = 0.0
    tree_score_points: Optional[float] = None
    tree_ids: List[str] = []


class LineItemOut(LineItemIn):
    model_config = ConfigDict(from_attributes=True)

    id: str
    item_number: int
    total_price: float


class ProposalCreate(BaseModel):
    line_items: List[LineItemIn] = []
    tax_rate: Optional[float] = None
    proposal_notes: Optional[str] = None


class DeclineRequest(BaseModel):
    reason: Optional[str] = None


class AcceptRequest(BaseModel):
    expected_version: Optional[int] = None


class ProposalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version_id: int
    proposal_number: str
    lead_id: str
    customer_name: str
    full_property_address: str
    status: ProposalStatus
    line_items: List[LineItemOut]
    tax_rate: float
    subtotal: float
    tax_amount: float
    total_amount: float
    total_labor_cost: float
    total_equipment_cost: float
    total_material_cost: float
    profit_margin: float
    estimated_duration: float
    payment_terms: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    work_order_id: Optional[str] = None
