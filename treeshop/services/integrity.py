# treeshop/services/integrity.py
"""
Referential-integrity diagnostics for identifier links.

Records point at each other by id (JSON id lists and loose id columns),
not by foreign key. This module reports every link whose target is gone,
or is an archived lead.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Type

from sqlalchemy.orm import Session

from treeshop.logging_config import get_logger
from treeshop.models import (
    Customer,
    Employee,
    Equipment,
    Invoice,
    Lead,
    Property,
    Proposal,
    TimeEntry,
    Tree,
    WorkOrder,
)

logger = get_logger(__name__)

REASON_MISSING = "missing"
REASON_ARCHIVED = "archived"


@dataclass(frozen=True)
class OrphanedReference:
    source_type: str
    source_id: str
    field: str
    target_type: str
    target_id: str
    reason: str


# (source model, attribute, target model)
LINKS = (
    (Customer, "property_ids", Property),
    (Customer, "linked_lead_ids", Lead),
    (Customer, "linked_proposal_ids", Proposal),
    (Customer, "linked_work_order_ids", WorkOrder),
    (Customer, "linked_invoice_ids", Invoice),
    (Property, "customer_id", Customer),
    (Property, "tree_ids", Tree),
    (Property, "lead_ids", Lead),
    (Property, "proposal_ids", Proposal),
    (Property, "work_order_ids", WorkOrder),
    (Property, "invoice_ids", Invoice),
    (Lead, "customer_id", Customer),
    (Lead, "property_id", Property),
    (Proposal, "customer_id", Customer),
    (Proposal, "property_id", Property),
    (WorkOrder, "customer_id", Customer),
    (WorkOrder, "property_id", Property),
    (WorkOrder, "assigned_employee_ids", Employee),
    (WorkOrder, "assigned_equipment_ids", Equipment),
    (WorkOrder, "time_entry_ids", TimeEntry),
    (Invoice, "customer_id", Customer),
    (Invoice, "property_id", Property),
    (Tree, "property_id", Property),
)


def _existing_ids(db: Session, model: Type) -> Set[str]:
    return {row[0] for row in db.query(model.id).all()}


def _targets(value) -> Iterable[str]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return value
    return (value,)


def find_orphaned_references(db: Session) -> List[OrphanedReference]:
    known: Dict[Type, Set[str]] = {}
    archived_leads = {row[0] for row in db.query(Lead.id).filter(Lead.is_archived.is_(True)).all()}

    found: List[OrphanedReference] = []
    for source, attr, target in LINKS:
        if target not in known:
            known[target] = _existing_ids(db, target)
        for record in db.query(source).all():
            for target_id in _targets(getattr(record, attr)):
                reason: Optional[str] = None
                if target_id not in known[target]:
                    reason = REASON_MISSING
                elif target is Lead and target_id in archived_leads:
                    reason = REASON_ARCHIVED
                if reason:
                    found.append(
                        OrphanedReference(
                            source_type=source.__name__,
                            source_id=record.id,
                            field=attr,
                            target_type=target.__name__,
                            target_id=target_id,
                            reason=reason,
                        )
                    )

    if found:
        logger.warning("orphaned_references_found", count=len(found))
    return found
