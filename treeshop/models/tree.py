# treeshop/models/tree.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treeshop.db import Base, UTCDateTime, utcnow
from treeshop.domain.enums import RiskLevel, ServiceType, TreeHealthStatus, TreeStatus
from treeshop.domain.tree_scoring import score_tree
from treeshop.errors import InvalidInputError, require_int_in_range, require_non_negative
from treeshop.models.base import EntityMixin, enum_column


class Tree(EntityMixin, Base):
    """
    A tree assessed in the field.

    crown_spread / tree_score / trim_score are cached outputs of the scoring
    engine. They are only written by `_rescore`, which every measurement
    mutator calls, so they can never go stale.
    """

    __tablename__ = "trees"

    version_id = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    property_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)

    species: Mapped[str] = mapped_column(String(120), nullable=False)
    common_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    scientific_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    # measurements
    dbh: Mapped[float] = mapped_column(Float, nullable=False)  # inches
    height: Mapped[float] = mapped_column(Float, nullable=False)  # feet
    canopy_radius: Mapped[float] = mapped_column(Float, nullable=False)  # feet
    percent_to_trim: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # cached scores
    crown_spread: Mapped[float] = mapped_column(Float, nullable=False)
    tree_score: Mapped[float] = mapped_column(Float, nullable=False)
    trim_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # condition
    health_status: Mapped[TreeHealthStatus] = mapped_column(enum_column(TreeHealthStatus), nullable=False)
    condition_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    risk_level: Mapped[Optional[RiskLevel]] = mapped_column(enum_column(RiskLevel), nullable=True)
    status: Mapped[TreeStatus] = mapped_column(enum_column(TreeStatus), index=True, nullable=False)
    recommended_services: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # work history
    work_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    has_been_worked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_work_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    total_revenue: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    removal_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    assessed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __init__(
        self,
        *,
        latitude: float,
        longitude: float,
        species: str,
        dbh: float,
        height: float,
        canopy_radius: float,
        percent_to_trim: Optional[float] = None,
        condition_rating: Optional[int] = None,
        now: Optional[datetime] = None,
        **kwargs,
    ):
        scores = score_tree(height, dbh, canopy_radius, percent_to_trim)
        if condition_rating is not None:
            require_int_in_range("condition_rating", condition_rating, 1, 5)
        kwargs.setdefault("health_status", TreeHealthStatus.HEALTHY)
        kwargs.setdefault("status", TreeStatus.ACTIVE)
        super().__init__(
            now=now,
            latitude=latitude,
            longitude=longitude,
            species=species,
            dbh=float(dbh),
            height=float(height),
            canopy_radius=float(canopy_radius),
            percent_to_trim=None if percent_to_trim is None else float(percent_to_trim),
            crown_spread=scores.crown_spread,
            tree_score=scores.tree_score,
            trim_score=scores.trim_score,
            condition_rating=condition_rating,
            recommended_services=[],
            work_history=[],
            has_been_worked=False,
            total_revenue=0.0,
            **kwargs,
        )

    # ----------------------------------------------------
    # Measurements
    # ----------------------------------------------------
    def _rescore(self, height, dbh, canopy_radius, percent_to_trim, now: Optional[datetime]) -> None:
        # compute first so a rejected input leaves every field untouched
        scores = score_tree(height, dbh, canopy_radius, percent_to_trim)
        self.height = float(height)
        self.dbh = float(dbh)
        self.canopy_radius = float(canopy_radius)
        self.percent_to_trim = None if percent_to_trim is None else float(percent_to_trim)
        self.crown_spread = scores.crown_spread
        self.tree_score = scores.tree_score
        self.trim_score = scores.trim_score
        self.touch(now)

    def update_measurements(
        self,
        dbh: Optional[float] = None,
        height: Optional[float] = None,
        canopy_radius: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._rescore(
            self.height if height is None else height,
            self.dbh if dbh is None else dbh,
            self.canopy_radius if canopy_radius is None else canopy_radius,
            self.percent_to_trim,
            now,
        )

    def set_trim_percentage(self, percent: Optional[float], now: Optional[datetime] = None) -> None:
        """None clears the assessment; 0 means explicitly nothing to trim."""
        self._rescore(self.height, self.dbh, self.canopy_radius, percent, now)

    # ----------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------
    def add_work_record(
        self,
        service: ServiceType,
        date: datetime,
        revenue: float = 0.0,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        if self.is_removed:
            raise InvalidInputError("cannot log work on a removed tree", meta={"tree_id": self.id})
        revenue = require_non_negative("revenue", revenue)
        record = {
            "service": ServiceType(service).value,
            "date": date.isoformat(),
            "revenue": revenue,
            "notes": notes,
        }
        self.work_history = list(self.work_history or []) + [record]
        self.has_been_worked = True
        if self.last_work_date is None or date > self.last_work_date:
            self.last_work_date = date
        self.total_revenue = (self.total_revenue or 0.0) + revenue
        self.touch(now)

    def mark_removed(self, date: Optional[datetime] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.status = TreeStatus.REMOVED
        self.health_status = TreeHealthStatus.REMOVED
        self.removal_date = date or now
        self.touch(now)

    def set_condition(
        self,
        health_status: Optional[TreeHealthStatus] = None,
        condition_rating: Optional[int] = None,
        risk_level: Optional[RiskLevel] = None,
        now: Optional[datetime] = None,
    ) -> None:
        if condition_rating is not None:
            require_int_in_range("condition_rating", condition_rating, 1, 5)
            self.condition_rating = condition_rating
        if health_status is not None:
            self.health_status = TreeHealthStatus(health_status)
        if risk_level is not None:
            self.risk_level = RiskLevel(risk_level)
        self.touch(now)

    @property
    def is_removed(self) -> bool:
        return self.status is TreeStatus.REMOVED

    @property
    def display_name(self) -> str:
        return self.common_name or self.species
