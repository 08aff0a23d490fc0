import pytest

from ecoquote.calculators.pricing import compute_financing, compute_total, price_selection
from ecoquote.models import FinancingPlan, Selection

from conftest import make_product


def test_scenario_a_pay_in_full():
    product = make_product(
        pricing=[{"id": "o1", "price": 1000}],
        installation_kits=[{"id": "k1", "price": 200}],
        extras=[],
    )
    bd = price_selection(product, Selection(option_id="o1", kit_id="k1"))
    assert bd.total == 1200
    assert bd.financed_total == 1200
    assert bd.installment is None
    assert bd.plan is None


def test_scenario_b_decrement_to_zero_removes_extra(product):
    sel = Selection(option_id="o1", kit_id="k1").with_extra_quantity("e1", 3)
    assert compute_total(product, sel) == 1000 + 200 + 150
    for _ in range(3):
        sel = sel.with_extra_delta("e1", -1)
    assert "e1" not in sel.extras
    assert compute_total(product, sel) == 1200


def test_decrement_below_zero_clamps(product):
    sel = Selection().with_extra_delta("e1", -1)
    assert sel.extras == {}


def test_negative_quantity_rejected():
    with pytest.raises(ValueError):
        Selection(extras={"e1": -2})


def test_scenario_c_coefficient_plan():
    plan = FinancingPlan(label="12 meses", months=12, coefficient=1.05)
    financed, installment = compute_financing(1200, plan)
    assert financed == pytest.approx(1260)
    assert installment == pytest.approx(105)


def test_commission_plan():
    plan = FinancingPlan(months=10, commission=5)
    financed, installment = compute_financing(1000, plan)
    assert financed == pytest.approx(1050)
    assert installment == pytest.approx(105)


def test_plan_without_rates_spreads_total():
    financed, installment = compute_financing(1200, FinancingPlan(months=6))
    assert financed == 1200
    assert installment == 200


def test_total_is_option_plus_kit_plus_extras(product):
    sel = Selection(option_id="o2", kit_id="k2", extras={"e1": 2, "e2": 1})
    assert compute_total(product, sel) == 1400 + 350 + 2 * 50 + 30


def test_unknown_ids_fall_back_to_first_entry(product):
    sel = Selection(option_id="zzz", kit_id="nope", extras={"ghost": 4})
    bd = price_selection(product, sel)
    assert bd.option.id == "o1"
    assert bd.kit.id == "k1"
    assert bd.extras == []
    assert bd.total == 1200


def test_product_without_options_uses_defaults():
    product = make_product(pricing=[], installation_kits=[])
    bd = price_selection(product, Selection())
    assert bd.option.name == "Estándar"
    assert bd.kit.name == "Instalación Básica"
    assert bd.total == 0


def test_out_of_range_plan_is_pay_in_full(product):
    bd = price_selection(product, Selection(financing_index=7))
    assert bd.plan is None
    assert bd.financed_total == bd.total


def test_financing_uses_selected_plan(product):
    bd = price_selection(product, Selection(option_id="o1", kit_id="k1", financing_index=0))
    assert bd.financed_total == pytest.approx(1260)
    assert bd.installment == pytest.approx(105)
