# treeshop/services/links.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from treeshop.errors import NotFoundError
from treeshop.models.customer import Customer
from treeshop.models.property import Property


def owners(
    db: Session,
    customer_id: Optional[str],
    property_id: Optional[str],
) -> Tuple[Optional[Customer], Optional[Property]]:
    """Resolve the customer / property a record points at; a dangling id is an error."""
    customer = None
    prop = None
    if customer_id:
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("linked customer does not exist", meta={"customer_id": customer_id})
    if property_id:
        prop = db.get(Property, property_id)
        if prop is None:
            raise NotFoundError("linked property does not exist", meta={"property_id": property_id})
    return customer, prop


def link_to_owners(
    db: Session,
    kind: str,
    entity_id: str,
    customer_id: Optional[str],
    property_id: Optional[str],
    now: Optional[datetime] = None,
) -> Tuple[Optional[Customer], Optional[Property]]:
    customer, prop = owners(db, customer_id, property_id)
    if customer is not None:
        customer.link(kind, entity_id, now=now)
    if prop is not None:
        prop.link(kind, entity_id, now=now)
    return customer, prop
