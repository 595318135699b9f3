# treeshop/schemas/leads.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from treeshop.domain.enums import ContactMethod, LeadSource, ServiceType, UrgencyLevel, WorkflowStage


class LeadCreate(BaseModel):
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    property_address: str
    property_city: str
    property_state: str
    property_zip: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    service_types: List[ServiceType] = Field(..., min_length=1)
    lead_source: LeadSource
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    preferred_contact_method: ContactMethod = ContactMethod.PHONE
    project_description: str = ""
    needs_site_visit: bool = True
    customer_id: Optional[str] = None
    property_id: Optional[str] = None
    estimated_value: Optional[float] = None
    referral_source: Optional[str] = None


class StageTransitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    from_stage: Optional[WorkflowStage] = None
    to_stage: WorkflowStage
    occurred_at: datetime
    kind: str
    notes: Optional[str] = None


class LeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version_id: int
    created_at: datetime
    updated_at: datetime
    workflow_stage: WorkflowStage
    stage_history: List[StageTransitionOut]
    customer_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    property_id: Optional[str] = None
    full_address: str
    latitude: float
    longitude: float
    service_types: List[ServiceType]
    urgency_level: UrgencyLevel
    lead_source: LeadSource
    needs_site_visit: bool
    next_follow_up_at: Optional[datetime] = None
    last_contact_at: Optional[datetime] = None
    attempt_count: int
    is_active: bool
    is_converted: bool
    is_archived: bool
    lost_reason: Optional[str] = None


class AdvanceRequest(BaseModel):
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class SetStageRequest(BaseModel):
    stage: WorkflowStage
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class ArchiveRequest(BaseModel):
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class ContactRequest(BaseModel):
    method: ContactMethod
    notes: Optional[str] = None
    next_follow_up_at: Optional[AwareDatetime] = None


class LeadStats(BaseModel):
    conversion_rate: float
    average_response_hours: Optional[float] = None
    by_source: Dict[LeadSource, int]
