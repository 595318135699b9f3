# treeshop/schemas/calculators.py
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


class TreeScoreRequest(BaseModel):
    height: float = Field(..., description="Height in feet")
    dbh: float = Field(..., description="Diameter at breast height in inches")
    canopy_radius: float = Field(..., description="Canopy radius in feet")
    percent_to_trim: Optional[float] = Field(None, description="0-100; omit when not assessed")


class TreeScoreResponse(BaseModel):
    crown_spread: float
    tree_score: float
    trim_score: Optional[float] = None


class EquipmentCostRequest(BaseModel):
    purchase_price: float
    annual_hours: float
    fuel_gph: float
    fuel_price: float
    depreciation_years: float = 5
    maintenance_pct: float = 0.15
    insurance_annual: float = 0.0
    registration_annual: float = 0.0
    storage_annual: float = 0.0


class EquipmentCostResponse(BaseModel):
    fuel: float
    depreciation: float
    maintenance: float
    insurance_fixed: float
    total: float
    minimum_billing_rate: float


class WageRequest(BaseModel):
    base_hourly_rate: float
    tier: int
    has_team_leader: bool = False
    has_supervisor: bool = False
    equipment_level: int = 1
    driver_class: int = 1
    has_crane: bool = False
    has_isa: bool = False
    has_osha: bool = False
    has_hazmat: bool = False


class WageResponse(BaseModel):
    tier_multiplier: float
    tiered_base: float
    leadership: float
    equipment: float
    driver: float
    certifications: float
    total_hourly_wage: float
    burden_multiplier: float
    true_business_cost: float


class PointsRequest(BaseModel):
    # (latitude, longitude) pairs in drawing order
    points: List[Tuple[float, float]]


class DistanceResponse(BaseModel):
    meters: Optional[float] = None


class AreaResponse(BaseModel):
    square_meters: Optional[float] = None
