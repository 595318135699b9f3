# treeshop/routers/calculators.py
"""Stateless previews of the pricing engines; nothing is stored."""
from fastapi import APIRouter

from treeshop.config import get_settings
from treeshop.domain import compensation, equipment_costs, geo, tree_scoring
from treeshop.errors import InvalidInputError
from treeshop.observability.metrics import calculation_error_counter
from treeshop.schemas.calculators import (
    AreaResponse,
    DistanceResponse,
    EquipmentCostRequest,
    EquipmentCostResponse,
    PointsRequest,
    TreeScoreRequest,
    TreeScoreResponse,
    WageRequest,
    WageResponse,
)

router = APIRouter(prefix="/calculators", tags=["calculators"])


def _counted(engine: str, fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except InvalidInputError:
        calculation_error_counter.labels(engine=engine).inc()
        raise


@router.post("/tree-score", response_model=TreeScoreResponse)
def tree_score(body: TreeScoreRequest):
    scores = _counted(
        "tree",
        tree_scoring.score_tree,
        body.height,
        body.dbh,
        body.canopy_radius,
        body.percent_to_trim,
    )
    return TreeScoreResponse(
        crown_spread=scores.crown_spread,
        tree_score=scores.tree_score,
        trim_score=scores.trim_score,
    )


@router.post("/equipment-cost", response_model=EquipmentCostResponse)
def equipment_cost(body: EquipmentCostRequest):
    costs = _counted(
        "equipment",
        equipment_costs.calculate_costs,
        purchase_price=body.purchase_price,
        annual_hours=body.annual_hours,
        fuel_gph=body.fuel_gph,
        fuel_price=body.fuel_price,
        depreciation_years=body.depreciation_years,
        maintenance_pct=body.maintenance_pct,
        insurance_annual=body.insurance_annual,
        registration_annual=body.registration_annual,
        storage_annual=body.storage_annual,
    )
    return EquipmentCostResponse(
        fuel=costs.fuel,
        depreciation=costs.depreciation,
        maintenance=costs.maintenance,
        insurance_fixed=costs.insurance_fixed,
        total=costs.total,
        minimum_billing_rate=costs.minimum_billing_rate,
    )


@router.post("/wage", response_model=WageResponse)
def wage(body: WageRequest):
    s = get_settings()
    params = body.model_dump()
    base = params.pop("base_hourly_rate")
    tier = params.pop("tier")

    breakdown = _counted(
        "compensation",
        compensation.wage_breakdown,
        base,
        tier,
        tier_table=s.tier_multipliers,
        strict=True,
        **params,
    )
    burden = _counted("compensation", compensation.burden_multiplier, tier, s.burden_multipliers, strict=True)
    return WageResponse(
        tier_multiplier=breakdown.tier_multiplier,
        tiered_base=breakdown.tiered_base,
        leadership=breakdown.leadership,
        equipment=breakdown.equipment,
        driver=breakdown.driver,
        certifications=breakdown.certifications,
        total_hourly_wage=breakdown.total,
        burden_multiplier=burden,
        true_business_cost=breakdown.total * burden,
    )


@router.post("/distance", response_model=DistanceResponse)
def distance(body: PointsRequest):
    return DistanceResponse(meters=geo.distance(body.points))


@router.post("/area", response_model=AreaResponse)
def area(body: PointsRequest):
    return AreaResponse(square_meters=geo.area(body.points))
