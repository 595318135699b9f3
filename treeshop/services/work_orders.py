# treeshop/services/work_orders.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from treeshop.db import utcnow
from treeshop.domain.enums import JournalEntryType, LineItemStatus, TaskType, WorkOrderStatus
from treeshop.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from treeshop.logging_config import bind_context, get_logger
from treeshop.models.employee import Employee
from treeshop.models.equipment import Equipment
from treeshop.models.time_entry import TimeEntry
from treeshop.models.work_order import WorkOrder
from treeshop.observability.metrics import time_logged_counter
from treeshop.services import repository

logger = get_logger(__name__)


def get_work_order(db: Session, work_order_id: str) -> WorkOrder:
    return repository.get(db, WorkOrder, work_order_id)


def _load_all(db: Session, model, ids: Iterable[str]) -> list:
    ids = list(ids)
    found = {e.id: e for e in db.query(model).filter(model.id.in_(ids)).all()} if ids else {}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"unknown {model.__name__} ids", meta={"ids": missing})
    return [found[i] for i in ids]


# ----------------------------------------------------
# Crew, equipment, status
# ----------------------------------------------------
def assign_crew(
    db: Session,
    work_order_id: str,
    employee_ids: List[str],
    crew_lead_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WorkOrder:
    wo = get_work_order(db, work_order_id)
    _load_all(db, Employee, employee_ids)
    wo = repository.update(db, wo, lambda w: w.assign_crew(employee_ids, crew_lead_id=crew_lead_id, now=now))
    logger.info("work_order_crew_assigned", work_order_id=wo.id, crew_size=wo.crew_size)
    return wo


def assign_equipment(
    db: Session,
    work_order_id: str,
    equipment_ids: List[str],
    now: Optional[datetime] = None,
) -> WorkOrder:
    wo = get_work_order(db, work_order_id)
    _load_all(db, Equipment, equipment_ids)
    return repository.update(db, wo, lambda w: w.assign_equipment(equipment_ids, now=now))


def start_work_order(db: Session, work_order_id: str, now: Optional[datetime] = None) -> WorkOrder:
    wo = get_work_order(db, work_order_id)
    wo = repository.update(db, wo, lambda w: w.start_work(now=now))
    logger.info("work_order_started", work_order_id=wo.id)
    return wo


def complete_work_order(db: Session, work_order_id: str, now: Optional[datetime] = None) -> WorkOrder:
    now = now or utcnow()
    wo = get_work_order(db, work_order_id)
    with bind_context(lead_id=wo.lead_id, work_order_id=wo.id):
        crew = _load_all(db, Employee, wo.assigned_employee_ids or [])
        try:
            wo.complete_work(now=now)
            for employee in crew:
                employee.record_hours(0.0, job_completed=True, now=now)
        except Exception:
            db.rollback()
            raise
        repository.commit(db)
        db.refresh(wo)
        logger.info(
            "work_order_completed",
            hours_tracked=wo.total_hours_tracked,
            completion_percentage=wo.completion_percentage,
            performance_variance=wo.performance_variance,
        )
    return wo


def update_line_item_progress(
    db: Session,
    work_order_id: str,
    item_id: str,
    actual_hours: Optional[float] = None,
    actual_cost: Optional[float] = None,
    status: Optional[LineItemStatus] = None,
    now: Optional[datetime] = None,
) -> WorkOrder:
    wo = get_work_order(db, work_order_id)
    return repository.update(
        db,
        wo,
        lambda w: w.update_line_item_progress(
            item_id, actual_hours=actual_hours, actual_cost=actual_cost, status=status, now=now
        ),
    )


def add_journal_entry(
    db: Session,
    work_order_id: str,
    entry_type: JournalEntryType,
    title: str,
    description: str = "",
    author_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WorkOrder:
    wo = get_work_order(db, work_order_id)
    return repository.update(
        db,
        wo,
        lambda w: w.add_journal_entry(entry_type, title, description=description, author_id=author_id, now=now),
    )


# ----------------------------------------------------
# Time tracking
# ----------------------------------------------------
def start_time_entry(
    db: Session,
    work_order_id: str,
    task_type: TaskType,
    task_category: str,
    task_description: str = "",
    line_item_id: Optional[str] = None,
    employee_ids: Optional[List[str]] = None,
    equipment_ids: Optional[List[str]] = None,
    start_location: Optional[Tuple[float, float]] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    """Start the clock on a task; crew and equipment default to the work order's."""
    wo = get_work_order(db, work_order_id)
    if wo.status in (WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED):
        raise InvalidTransitionError(
            f"cannot track time on a {wo.status.value} work order",
            meta={"work_order_id": wo.id},
        )
    if line_item_id is not None and line_item_id not in {i.id for i in wo.line_items}:
        raise NotFoundError("line item not found", meta={"work_order_id": wo.id, "line_item_id": line_item_id})

    crew = wo.assigned_employee_ids if employee_ids is None else employee_ids
    machines = wo.assigned_equipment_ids if equipment_ids is None else equipment_ids
    _load_all(db, Employee, crew or [])
    _load_all(db, Equipment, machines or [])

    entry = TimeEntry(
        task_type=task_type,
        task_category=task_category,
        task_description=task_description,
        work_order_id=wo.id,
        line_item_id=line_item_id,
        assigned_employee_ids=crew,
        equipment_ids=machines,
        crew_lead_id=wo.crew_lead_id,
        start_location=start_location,
        now=now,
    )
    return repository.create(db, entry)


def log_time_entry(db: Session, time_entry_id: str, now: Optional[datetime] = None) -> WorkOrder:
    """
    Post a completed time entry to its work order.

      labor cost     = sum(crew true business cost) * duration
      equipment cost = sum(equipment total hourly cost) * duration

    Equipment usage and crew hours are recorded in the same unit of work.
    """
    now = now or utcnow()
    entry = repository.get(db, TimeEntry, time_entry_id)
    if not entry.is_complete:
        raise InvalidTransitionError("time entry is still running", meta={"time_entry_id": entry.id})
    if entry.is_logged:
        raise InvalidTransitionError("time entry already logged", meta={"time_entry_id": entry.id})
    if entry.work_order_id is None:
        raise InvalidInputError("time entry has no work order", meta={"time_entry_id": entry.id})

    wo = get_work_order(db, entry.work_order_id)
    crew = _load_all(db, Employee, entry.assigned_employee_ids or [])
    machines = _load_all(db, Equipment, entry.equipment_ids or [])

    hours = entry.duration
    labor_cost = sum(e.true_business_cost for e in crew) * hours
    equipment_cost = sum(m.total_hourly_cost for m in machines) * hours

    with bind_context(lead_id=wo.lead_id, work_order_id=wo.id):
        try:
            entry.apply_costs(labor_cost, equipment_cost, now=now)
            wo.add_time_entry(entry.id, hours, labor_cost, equipment_cost, now=now)
            for machine in machines:
                machine.log_usage(hours, used_at=entry.end_time, now=now)
            for employee in crew:
                employee.record_hours(hours, points=entry.points_completed or 0.0, now=now)
            entry.is_logged = True
        except Exception:
            db.rollback()
            raise
        repository.commit(db)
        db.refresh(wo)

        time_logged_counter.labels(billable=str(entry.is_billable).lower()).inc()
        logger.info(
            "work_order_time_logged",
            time_entry_id=entry.id,
            hours=hours,
            labor_cost=labor_cost,
            equipment_cost=equipment_cost,
            completion_percentage=wo.completion_percentage,
        )
        for machine in machines:
            if machine.should_consider_replacement:
                logger.warning(
                    "equipment_replacement_flagged",
                    equipment_id=machine.id,
                    reasons=machine.replacement_trigger_notes,
                )
    return wo


def finish_time_entry(
    db: Session,
    time_entry_id: str,
    now: Optional[datetime] = None,
    location: Optional[Tuple[float, float]] = None,
    points_completed: Optional[float] = None,
) -> WorkOrder:
    """Stop the clock and post the entry to its work order."""
    entry = repository.get(db, TimeEntry, time_entry_id)
    repository.update(
        db,
        entry,
        lambda e: e.complete(now=now, location=location, points_completed=points_completed),
    )
    return log_time_entry(db, time_entry_id, now=now)


def pause_time_entry(db: Session, time_entry_id: str, now: Optional[datetime] = None) -> TimeEntry:
    entry = repository.get(db, TimeEntry, time_entry_id)
    return repository.update(db, entry, lambda e: e.pause(now=now))


def resume_time_entry(db: Session, time_entry_id: str, now: Optional[datetime] = None) -> TimeEntry:
    entry = repository.get(db, TimeEntry, time_entry_id)
    return repository.update(db, entry, lambda e: e.resume(now=now))
