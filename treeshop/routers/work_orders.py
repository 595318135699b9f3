# treeshop/routers/work_orders.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from treeshop.db import get_db
from treeshop.schemas.work_orders import (
    CrewRequest,
    EquipmentRequest,
    InvoiceOut,
    PaymentIn,
    TimeEntryFinish,
    TimeEntryOut,
    TimeEntryStart,
    WorkOrderOut,
)
from treeshop.services import invoices, work_orders

router = APIRouter(tags=["work-orders"])


@router.get("/work-orders/{work_order_id}", response_model=WorkOrderOut)
def get_work_order(work_order_id: str, db: Session = Depends(get_db)):
    return work_orders.get_work_order(db, work_order_id)


@router.post("/work-orders/{work_order_id}/crew", response_model=WorkOrderOut)
def assign_crew(work_order_id: str, body: CrewRequest, db: Session = Depends(get_db)):
    return work_orders.assign_crew(db, work_order_id, body.employee_ids, crew_lead_id=body.crew_lead_id)


@router.post("/work-orders/{work_order_id}/equipment", response_model=WorkOrderOut)
def assign_equipment(work_order_id: str, body: EquipmentRequest, db: Session = Depends(get_db)):
    return work_orders.assign_equipment(db, work_order_id, body.equipment_ids)


@router.post("/work-orders/{work_order_id}/start", response_model=WorkOrderOut)
def start_work_order(work_order_id: str, db: Session = Depends(get_db)):
    return work_orders.start_work_order(db, work_order_id)


@router.post("/work-orders/{work_order_id}/time-entries", response_model=TimeEntryOut, status_code=201)
def start_time_entry(work_order_id: str, body: TimeEntryStart, db: Session = Depends(get_db)):
    return work_orders.start_time_entry(
        db,
        work_order_id,
        task_type=body.task_type,
        task_category=body.task_category,
        task_description=body.task_description,
        line_item_id=body.line_item_id,
        employee_ids=body.employee_ids,
        equipment_ids=body.equipment_ids,
        start_location=body.start_location,
    )


@router.post("/time-entries/{time_entry_id}/pause", response_model=TimeEntryOut)
def pause_time_entry(time_entry_id: str, db: Session = Depends(get_db)):
    return work_orders.pause_time_entry(db, time_entry_id)


@router.post("/time-entries/{time_entry_id}/resume", response_model=TimeEntryOut)
def resume_time_entry(time_entry_id: str, db: Session = Depends(get_db)):
    return work_orders.resume_time_entry(db, time_entry_id)


@router.post("/time-entries/{time_entry_id}/finish", response_model=WorkOrderOut)
def finish_time_entry(time_entry_id: str, body: TimeEntryFinish = TimeEntryFinish(), db: Session = Depends(get_db)):
    return work_orders.finish_time_entry(
        db,
        time_entry_id,
        location=body.end_location,
        points_completed=body.points_completed,
    )


@router.post("/work-orders/{work_order_id}/complete", response_model=WorkOrderOut)
def complete_work_order(work_order_id: str, db: Session = Depends(get_db)):
    return work_orders.complete_work_order(db, work_order_id)


@router.post("/work-orders/{work_order_id}/invoice", response_model=InvoiceOut, status_code=201)
def create_invoice(work_order_id: str, db: Session = Depends(get_db)):
    return invoices.create_invoice_for_work_order(db, work_order_id)


@router.get("/invoices/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return invoices.get_invoice(db, invoice_id)


@router.post("/invoices/{invoice_id}/payments", response_model=InvoiceOut)
def record_payment(invoice_id: str, body: PaymentIn, db: Session = Depends(get_db)):
    return invoices.record_payment(db, invoice_id, body.amount, method=body.method)
