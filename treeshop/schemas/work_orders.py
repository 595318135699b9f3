# treeshop/schemas/work_orders.py
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from treeshop.domain.enums import (
    InvoiceStatus,
    LineItemStatus,
    ServiceType,
    TaskType,
    UrgencyLevel,
    WorkOrderStatus,
)


class WorkOrderLineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    item_number: int
    service_type: ServiceType
    description: str
    estimated_hours: float
    estimated_cost: float
    actual_hours: Optional[float] = None
    actual_cost: Optional[float] = None
    status: LineItemStatus


class WorkOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version_id: int
    work_order_number: str
    proposal_id: str
    lead_id: Optional[str] = None
    status: WorkOrderStatus
    priority: UrgencyLevel
    line_items: List[WorkOrderLineItemOut]
    estimated_duration: float
    estimated_total_cost: float
    total_hours_tracked: float
    total_labor_cost: float
    total_equipment_cost: float
    actual_total_cost: Optional[float] = None
    performance_variance: Optional[float] = None
    completion_percentage: int
    assigned_employee_ids: List[str]
    assigned_equipment_ids: List[str]
    actual_start_at: Optional[datetime] = None
    actual_end_at: Optional[datetime] = None
    invoice_id: Optional[str] = None


class CrewRequest(BaseModel):
    employee_ids: List[str]
    crew_lead_id: Optional[str] = None


class EquipmentRequest(BaseModel):
    equipment_ids: List[str]


class TimeEntryStart(BaseModel):
    task_type: TaskType = TaskType.LINE_ITEM
    task_category: str
    task_description: str = ""
    line_item_id: Optional[str] = None
    employee_ids: Optional[List[str]] = None
    equipment_ids: Optional[List[str]] = None
    start_location: Optional[Tuple[float, float]] = None


class TimeEntryFinish(BaseModel):
    end_location: Optional[Tuple[float, float]] = None
    points_completed: Optional[float] = None


class TimeEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    work_order_id: Optional[str] = None
    task_type: TaskType
    task_category: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: float
    is_paused: bool
    is_billable: bool
    is_complete: bool
    labor_cost: float
    equipment_cost: float
    pph_achieved: Optional[float] = None


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_number: str
    work_order_id: str
    status: InvoiceStatus
    subtotal: float
    tax_rate: float
    tax_amount: float
    total_amount: float
    amount_paid: float
    balance_due: float
    issued_at: datetime
    due_at: datetime
    paid_at: Optional[datetime] = None


class PaymentIn(BaseModel):
    amount: float
    method: Optional[str] = None
