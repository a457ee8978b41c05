"""Tests for the quotation calculator."""
import pytest
from types import SimpleNamespace

from circuit_office.services.conditions import ConditionSelection
from circuit_office.services.quotation import (
    QuotationCalculator,
    MissingExchangeRateError,
    ratio_multiplier,
    apply_margin,
    exchange_rate_for,
    compute_vat,
    compute_commissions,
)


def _item(
    id=1,
    name="Item",
    unit_cost=10.0,
    quantity=1.0,
    ratio_rule="per_group",
    ratio_per=1,
    cost_nature_code="MIS",
    currency=None,
    condition_option_id=None,
):
    return SimpleNamespace(
        id=id,
        name=name,
        unit_cost=unit_cost,
        quantity=quantity,
        ratio_rule=ratio_rule,
        ratio_per=ratio_per,
        cost_nature_code=cost_nature_code,
        currency=currency,
        condition_option_id=condition_option_id,
    )


class TestRatioMultiplier:
    def test_per_person_uses_pax(self):
        assert ratio_multiplier("per_person", pax=3, rooms=2) == 3

    def test_per_person_with_divisor_rounds_up(self):
        # One guide per 12 travellers
        assert ratio_multiplier("per_person", pax=13, rooms=7, ratio_per=12) == 2
        assert ratio_multiplier("per_person", pax=12, rooms=6, ratio_per=12) == 1

    def test_per_room_uses_rooms(self):
        assert ratio_multiplier("per_room", pax=4, rooms=2) == 2

    def test_per_vehicle_one_per_four_pax(self):
        assert ratio_multiplier("per_vehicle", pax=4, rooms=2) == 1
        assert ratio_multiplier("per_vehicle", pax=5, rooms=3) == 2
        assert ratio_multiplier("per_vehicle", pax=9, rooms=5) == 3

    def test_per_vehicle_capacity_is_configurable(self):
        assert ratio_multiplier("per_vehicle", pax=5, rooms=3, vehicle_capacity=6) == 1

    def test_divisor_only_applies_per_person(self):
        assert ratio_multiplier("per_room", pax=8, rooms=4, ratio_per=2) == 4
        assert ratio_multiplier("per_vehicle", pax=8, rooms=4, ratio_per=8) == 2

    def test_per_group_and_unknown_are_flat(self):
        assert ratio_multiplier("per_group", pax=10, rooms=5) == 1
        assert ratio_multiplier(None, pax=10, rooms=5) == 1
        assert ratio_multiplier("per_unicorn", pax=10, rooms=5) == 1

    def test_negative_pax_counts_as_zero(self):
        assert ratio_multiplier("per_person", pax=-2, rooms=0) == 0
        assert ratio_multiplier("per_vehicle", pax=0, rooms=0) == 0


class TestApplyMargin:
    def test_margin_mode(self):
        assert apply_margin(80.0, 20.0, "margin") == pytest.approx(100.0)

    def test_markup_mode(self):
        assert apply_margin(100.0, 20.0, "markup") == pytest.approx(120.0)

    @pytest.mark.parametrize("margin", [5.0, 15.0, 30.0, 42.5, 75.0])
    def test_margin_mode_recovers_cost(self, margin):
        selling = apply_margin(1234.0, margin, "margin")
        assert selling * (1 - margin / 100) == pytest.approx(1234.0)

    def test_falsy_margin_defaults_to_30(self):
        assert apply_margin(70.0, 0, "margin") == pytest.approx(100.0)
        assert apply_margin(70.0, None, "margin") == pytest.approx(100.0)

    def test_margin_of_100_or_more_is_clamped(self):
        assert apply_margin(1.0, 100.0, "margin") == pytest.approx(100.0)
        assert apply_margin(1.0, 250.0, "margin") == pytest.approx(100.0)

    def test_large_markup_is_not_clamped(self):
        assert apply_margin(10.0, 150.0, "markup") == pytest.approx(25.0)


class TestExchangeRate:
    def test_same_currency_is_one(self):
        assert exchange_rate_for("EUR", "EUR", None) == 1.0
        assert exchange_rate_for(None, "EUR", None) == 1.0

    def test_rate_from_trip_rates(self):
        rates = {"rates": {"THB": {"rate": 0.025, "source": "manual"}}}
        assert exchange_rate_for("thb", "EUR", rates) == 0.025

    def test_plain_number_rate(self):
        assert exchange_rate_for("USD", "EUR", {"rates": {"USD": 0.9}}) == 0.9

    def test_missing_rate_raises(self):
        with pytest.raises(MissingExchangeRateError) as exc:
            exchange_rate_for("VND", "EUR", {"rates": {}})
        assert exc.value.from_currency == "VND"
        assert exc.value.to_currency == "EUR"


class TestQuotationCalculator:
    def test_per_person_total(self):
        calc = QuotationCalculator()
        item = _item(unit_cost=25.0, quantity=2, ratio_rule="per_person")
        for pax in (1, 2, 7):
            assert calc.total_cost([item], pax=pax, rooms=1) == pytest.approx(25.0 * 2 * pax)

    def test_quote_totals(self):
        calc = QuotationCalculator()
        items = [
            _item(id=1, unit_cost=50.0, ratio_rule="per_room", cost_nature_code="HTL"),
            _item(id=2, unit_cost=10.0, quantity=2, ratio_rule="per_person", cost_nature_code="ACT"),
        ]
        result = calc.quote(items, pax=4, rooms=2, margin_pct=25.0)

        assert result.total_cost == pytest.approx(180.0)
        assert result.selling_price == pytest.approx(240.0)
        assert result.margin_amount == pytest.approx(60.0)
        assert result.price_per_person == pytest.approx(60.0)

    def test_markup_quote(self):
        calc = QuotationCalculator()
        result = calc.quote([_item(unit_cost=100.0)], pax=2, rooms=1, margin_pct=10.0, margin_type="markup")
        assert result.selling_price == pytest.approx(110.0)

    def test_zero_pax_has_no_price_per_person(self):
        calc = QuotationCalculator()
        result = calc.quote([_item(unit_cost=100.0)], pax=0, rooms=0)
        assert result.price_per_person == 0.0
        assert result.margin_pct == 30.0

    def test_missing_values_count_as_zero(self):
        calc = QuotationCalculator()
        item = _item(unit_cost=None, quantity=None, ratio_rule=None)
        line = calc.cost_line(item, pax=2, rooms=1)
        assert line.subtotal == 0.0
        assert line.ratio_rule == "per_group"

    def test_empty_quote(self):
        result = QuotationCalculator().quote([], pax=2, rooms=1)
        assert result.total_cost == 0.0
        assert result.selling_price == 0.0
        assert result.categories == []

    def test_items_are_converted_to_selling_currency(self):
        calc = QuotationCalculator(currency="EUR", currency_rates={"rates": {"THB": {"rate": 0.025}}})
        line = calc.cost_line(_item(unit_cost=1000.0, currency="THB"), pax=2, rooms=1)
        assert line.exchange_rate == 0.025
        assert line.subtotal == pytest.approx(25.0)

    def test_missing_rate_propagates(self):
        calc = QuotationCalculator(currency="EUR")
        with pytest.raises(MissingExchangeRateError):
            calc.quote([_item(currency="LAK")], pax=2, rooms=1)

    def test_breakdown_by_cost_nature(self):
        calc = QuotationCalculator()
        items = [
            _item(id=1, unit_cost=60.0, cost_nature_code="HTL"),
            _item(id=2, unit_cost=30.0, cost_nature_code="TRS"),
            _item(id=3, unit_cost=10.0, cost_nature_code="XYZ"),
        ]
        result = calc.quote(items, pax=2, rooms=1)

        codes = [c.code for c in result.categories]
        assert codes == ["HTL", "TRS", "MIS"]
        assert result.categories[0].percentage == pytest.approx(60.0)
        assert result.categories[2].item_ids == [3]
        assert sum(c.percentage for c in result.categories) == pytest.approx(100.0)

    def test_condition_filtering(self):
        calc = QuotationCalculator()
        formula = SimpleNamespace(condition_id=1)
        items = [
            _item(id=1, unit_cost=100.0, condition_option_id=10),
            _item(id=2, unit_cost=200.0, condition_option_id=11),
            _item(id=3, unit_cost=5.0),
        ]
        selections = [ConditionSelection(condition_id=1, selected_option_id=10)]

        result = calc.quote(items, pax=2, rooms=1, formula=formula, trip_conditions=selections)

        assert result.total_cost == pytest.approx(105.0)
        excluded = [line for line in result.lines if not line.included]
        assert [line.item_id for line in excluded] == [2]
        assert excluded[0].subtotal == 0.0

    def test_excluded_item_needs_no_exchange_rate(self):
        calc = QuotationCalculator(currency="EUR", currency_rates={"rates": {}})
        formula = SimpleNamespace(condition_id=1)
        items = [
            _item(id=1, unit_cost=80.0, condition_option_id=10),
            _item(id=2, unit_cost=3000.0, currency="THB", condition_option_id=11),
        ]
        selections = [ConditionSelection(condition_id=1, selected_option_id=10)]

        result = calc.quote(items, pax=2, rooms=1, formula=formula, trip_conditions=selections)

        assert result.total_cost == pytest.approx(80.0)
        thb_line = result.lines[1]
        assert thb_line.included is False
        assert thb_line.subtotal == 0.0
        assert thb_line.exchange_rate == 1.0

    def test_as_dict_rounds_money(self):
        result = QuotationCalculator().quote([_item(unit_cost=10.0)], pax=3, rooms=2, margin_pct=30.0)
        data = result.as_dict()
        assert data["selling_price"] == 14.29
        assert data["price_per_person"] == 4.76
        assert data["lines"][0]["item_id"] == 1


class TestVatAndCommissions:
    def test_vat_on_margin(self):
        vat = compute_vat(100.0, 125.0, 20.0, "on_margin")
        assert vat.margin == 25.0
        assert vat.vat_base == 25.0
        assert vat.vat_amount == 5.0
        assert vat.price_ttc == 130.0

    def test_vat_on_selling_price_minus_commission(self):
        vat = compute_vat(100.0, 125.0, 20.0, "on_selling_price", primary_commission_pct=10.0)
        assert vat.vat_base == 112.5
        assert vat.vat_amount == 22.5
        assert vat.price_ttc == 147.5

    def test_negative_margin_has_no_vat(self):
        vat = compute_vat(150.0, 120.0, 20.0, "on_margin")
        assert vat.vat_amount == 0.0
        assert vat.price_ttc == 120.0

    def test_commissions(self):
        detail = compute_commissions(200.0, 10.0, "Agency", 5.0, "Sales")
        assert detail.primary_commission == 20.0
        assert detail.secondary_commission == 10.0
        assert detail.total_commissions == 30.0
        assert detail.net_price == 170.0
        assert detail.primary_commission_label == "Agency"

    def test_no_commission(self):
        detail = compute_commissions(200.0)
        assert detail.total_commissions == 0.0
        assert detail.net_price == 200.0
