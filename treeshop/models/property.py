# treeshop/models/property.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain import geo
from treeshop.domain.enums import CustomerType
from treeshop.errors import InvalidInputError, require_non_negative
from treeshop.models.base import EntityMixin, enum_column
from treeshop.models.customer import _with_id

LINK_FIELDS = {
    "lead": "lead_ids",
    "proposal": "proposal_ids",
    "work_order": "work_order_ids",
    "invoice": "invoice_ids",
}


class Property(EntityMixin, Base):
    __tablename__ = "properties"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    property_address: Mapped[str] = mapped_column(String(300), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    property_type: Mapped[CustomerType] = mapped_column(enum_column(CustomerType), nullable=False)
    acreage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    parcel_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    customer_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)

    # [[lat, lon], ...]
    parcel_boundary: Mapped[List[List[float]]] = mapped_column(JSON, nullable=False, default=list)

    tree_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    total_tree_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_trim_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    lead_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    proposal_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    work_order_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    invoice_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    jobs_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    first_job_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_job_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_visit_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # AFISS site complexity (hidden pricing multiplier)
    afiss_assessed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    afiss_structures_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    afiss_landscape_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    afiss_utilities_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    afiss_access_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    afiss_project_specific_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    afiss_multiplier: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    afiss_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    access_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    gate_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    property_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __init__(
        self,
        *,
        property_address: str,
        city: str,
        state: str,
        zip_code: str,
        latitude: float,
        longitude: float,
        property_type: CustomerType = CustomerType.RESIDENTIAL,
        customer_id: Optional[str] = None,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        super().__init__(
            now=now,
            property_address=property_address,
            city=city,
            state=state,
            zip_code=zip_code,
            latitude=latitude,
            longitude=longitude,
            property_type=CustomerType(property_type),
            customer_id=customer_id,
            parcel_boundary=[],
            tree_ids=[],
            lead_ids=[],
            proposal_ids=[],
            work_order_ids=[],
            invoice_ids=[],
            total_tree_score=0.0,
            total_trim_score=0.0,
            jobs_completed=0,
            total_revenue=0.0,
            is_active=True,
            **kwargs,
        )

    # ----------------------------------------------------
    # Trees
    # ----------------------------------------------------
    def add_tree(self, tree_id: str, now: Optional[datetime] = None) -> None:
        if tree_id in (self.tree_ids or []):
            return
        self.tree_ids = _with_id(self.tree_ids, tree_id)
        self.touch(now)

    def remove_tree(self, tree_id: str, now: Optional[datetime] = None) -> None:
        self.tree_ids = [t for t in (self.tree_ids or []) if t != tree_id]
        self.touch(now)

    def refresh_tree_totals(self, trees: Iterable, now: Optional[datetime] = None) -> None:
        """Re-sum scores over this property's standing trees."""
        mine = [t for t in trees if t.id in (self.tree_ids or []) and not t.is_removed]
        self.total_tree_score = sum(t.tree_score for t in mine)
        self.total_trim_score = sum(t.trim_score or 0.0 for t in mine)
        self.touch(now)

    @property
    def tree_count(self) -> int:
        return len(self.tree_ids or [])

    # ----------------------------------------------------
    # Jobs & links
    # ----------------------------------------------------
    def add_job(self, revenue: float, job_date: datetime, now: Optional[datetime] = None) -> None:
        revenue = require_non_negative("revenue", revenue)
        self.jobs_completed = (self.jobs_completed or 0) + 1
        self.total_revenue = (self.total_revenue or 0.0) + revenue
        if self.first_job_date is None:
            self.first_job_date = job_date
        self.last_job_date = job_date
        self.last_visit_date = job_date
        self.touch(now)

    def link(self, kind: str, entity_id: str, now: Optional[datetime] = None) -> None:
        try:
            field = LINK_FIELDS[kind]
        except KeyError:
            raise InvalidInputError(f"unknown link kind {kind!r}", meta={"kinds": sorted(LINK_FIELDS)})
        current = getattr(self, field) or []
        if entity_id in current:
            return
        setattr(self, field, _with_id(current, entity_id))
        self.touch(now)

    @property
    def average_revenue_per_job(self) -> float:
        if not self.jobs_completed:
            return 0.0
        return self.total_revenue / self.jobs_completed

    # ----------------------------------------------------
    # Parcel & AFISS
    # ----------------------------------------------------
    def set_parcel_boundary(self, points: Sequence[Sequence[float]], now: Optional[datetime] = None) -> None:
        if len(points) < 3:
            raise InvalidInputError("a parcel boundary needs at least 3 vertices", meta={"count": len(points)})
        self.parcel_boundary = [[float(lat), float(lon)] for lat, lon in points]
        self.touch(now)

    @property
    def has_parcel_boundary(self) -> bool:
        return len(self.parcel_boundary or []) >= 3

    @property
    def parcel_area_sq_m(self) -> Optional[float]:
        return geo.area(self.parcel_boundary or [])

    def update_afiss(
        self,
        structures: float,
        landscape: float,
        utilities: float,
        access: float,
        project_specific: float,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> float:
        scores = {
            "structures": structures,
            "landscape": landscape,
            "utilities": utilities,
            "access": access,
            "project_specific": project_specific,
        }
        scores = {k: require_non_negative(k, v) for k, v in scores.items()}

        now = now or utcnow()
        self.afiss_structures_score = scores["structures"]
        self.afiss_landscape_score = scores["landscape"]
        self.afiss_utilities_score = scores["utilities"]
        self.afiss_access_score = scores["access"]
        self.afiss_project_specific_score = scores["project_specific"]
        self.afiss_multiplier = 1.0 + sum(scores.values())
        self.afiss_notes = notes
        self.afiss_assessed_at = now
        self.touch(now)
        return self.afiss_multiplier

    @property
    def has_afiss_assessment(self) -> bool:
        return self.afiss_assessed_at is not None

    @property
    def full_address(self) -> str:
        return f"{self.property_address}, {self.city}, {self.state} {self.zip_code}"
