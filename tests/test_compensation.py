import pytest

from treeshop.domain import compensation as comp
from treeshop.errors import InvalidInputError


def test_wage_example():
    wage = comp.calculate_wage(15, 1, has_supervisor=True, equipment_level=3, has_crane=True)
    assert wage == pytest.approx(39.00)


def test_wage_is_pure():
    kwargs = dict(has_team_leader=True, driver_class=2, has_isa=True, has_osha=True)
    assert comp.calculate_wage(22, 3, **kwargs) == comp.calculate_wage(22, 3, **kwargs)


def test_only_one_leadership_premium():
    both = comp.wage_breakdown(20, 2, has_team_leader=True, has_supervisor=True)
    assert both.leadership == 7.00
    assert comp.wage_breakdown(20, 2, has_team_leader=True).leadership == 3.00


def test_certifications_are_additive():
    b = comp.wage_breakdown(10, 1, has_crane=True, has_isa=True, has_osha=True, has_hazmat=True)
    assert b.certifications == pytest.approx(10.00)


def test_unknown_tier_falls_back_unless_strict():
    assert comp.tier_multiplier(9) == 1.6
    assert comp.burden_multiplier(9) == 1.7
    with pytest.raises(InvalidInputError):
        comp.tier_multiplier(9, strict=True)
    with pytest.raises(InvalidInputError):
        comp.burden_multiplier(0, strict=True)


def test_tables_are_independent():
    wage = comp.calculate_wage(10, 2, tier_table={2: 3.0})
    assert wage == 30.0
    assert comp.true_business_cost(wage, 2, burden_table={2: 1.5}) == 45.0


@pytest.mark.parametrize("field, value", [("equipment_level", 5), ("driver_class", 0)])
def test_premium_levels_validated(field, value):
    with pytest.raises(InvalidInputError):
        comp.wage_breakdown(15, 1, **{field: value})


def test_true_business_cost_uses_burden():
    assert comp.true_business_cost(39.0, 1) == pytest.approx(62.4)
