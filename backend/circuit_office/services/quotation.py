"""
Quotation calculator.

Turns a block's items and a traveller/room configuration into a cost,
a selling price and the derived margin figures:

- each item costs unit_cost x quantity x ratio multiplier
  (pax for per_person, rooms for per_room, one vehicle per 4 pax,
  1 for per_group)
- margin mode:  selling = cost / (1 - margin%)
- markup mode:  selling = cost * (1 + margin%)

Everything here is plain arithmetic on floats, nothing touches the
database. Missing values count as zero.
"""
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Iterable, Optional

from circuit_office.models.item import COST_NATURE_NAMES
from circuit_office.services.conditions import should_include_item

logger = logging.getLogger(__name__)

DEFAULT_MARGIN_PCT = 30.0
DEFAULT_VEHICLE_CAPACITY = 4


class MissingExchangeRateError(Exception):
    """Raised when an item is priced in a currency the trip has no rate for."""

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.message = f"Exchange rate required: {from_currency} -> {to_currency}"
        super().__init__(self.message)


@dataclass
class ItemCostLine:
    item_id: Optional[int]
    item_name: str
    cost_nature_code: str
    ratio_rule: str
    unit_cost: float
    quantity: float
    multiplier: int
    exchange_rate: float
    subtotal: float
    included: bool = True


@dataclass
class CategoryBreakdown:
    code: str
    name: str
    total_cost: float = 0.0
    percentage: float = 0.0
    item_ids: list = field(default_factory=list)


@dataclass
class QuotationResult:
    pax: int
    rooms: int
    currency: str
    margin_type: str
    margin_pct: float
    total_cost: float
    selling_price: float
    margin_amount: float
    price_per_person: float
    lines: list[ItemCostLine] = field(default_factory=list)
    categories: list[CategoryBreakdown] = field(default_factory=list)

    def as_dict(self) -> dict:
        data = asdict(self)
        for key in ("total_cost", "selling_price", "margin_amount", "price_per_person"):
            data[key] = round(data[key], 2)
        return data


@dataclass
class VatDetail:
    margin: float
    vat_base: float
    vat_amount: float
    price_ttc: float


@dataclass
class CommissionDetail:
    gross_price: float
    primary_commission: float
    primary_commission_label: str
    secondary_commission: float
    secondary_commission_label: str
    total_commissions: float
    net_price: float


def ratio_multiplier(
    ratio_rule: Optional[str],
    pax: int,
    rooms: int,
    ratio_per: Optional[int] = 1,
    vehicle_capacity: int = DEFAULT_VEHICLE_CAPACITY,
) -> int:
    """
    Units of an item for a pax/room configuration.

    ratio_per is only a divisor for per_person items. Rooms are counted one
    per room and vehicles by vehicle_capacity, whatever ratio_per says.
    """
    pax = max(pax or 0, 0)
    rooms = max(rooms or 0, 0)

    if ratio_rule == "per_person":
        # "1 guide per 12 pax" style divisors
        if ratio_per and ratio_per > 1:
            return math.ceil(pax / ratio_per)
        return pax
    if ratio_rule == "per_room":
        return rooms
    if ratio_rule == "per_vehicle":
        return math.ceil(pax / max(vehicle_capacity, 1))
    return 1


def apply_margin(cost: float, margin_pct: Optional[float], margin_type: str = "margin") -> float:
    margin = margin_pct or DEFAULT_MARGIN_PCT

    if margin_type == "markup":
        return cost * (1 + margin / 100)

    if margin >= 100:
        margin = 99.0
    return cost / (1 - margin / 100)


def exchange_rate_for(
    currency: Optional[str],
    selling_currency: str,
    currency_rates: Optional[dict],
) -> float:
    """
    Rate to convert one unit of `currency` into the selling currency.

    currency_rates follows the trip's currency_rates_json layout:
    {"rates": {"THB": {"rate": 0.026, "source": "manual"}}} where a rate
    means 1 THB = 0.026 selling currency.
    """
    if not currency or currency.upper() == selling_currency.upper():
        return 1.0

    rates = (currency_rates or {}).get("rates", {})
    rate_data = rates.get(currency.upper())
    rate = rate_data.get("rate") if isinstance(rate_data, dict) else rate_data
    if not rate:
        raise MissingExchangeRateError(currency.upper(), selling_currency)
    return float(rate)


def compute_vat(
    total_cost: float,
    total_price: float,
    vat_pct: Optional[float],
    vat_calculation_mode: str = "on_margin",
    primary_commission_pct: Optional[float] = 0.0,
) -> VatDetail:
    margin = total_price - total_cost

    if vat_calculation_mode == "on_selling_price":
        commission = total_price * (primary_commission_pct or 0.0) / 100
        vat_base = total_price - commission
    else:
        vat_base = margin

    vat_amount = max(vat_base * (vat_pct or 0.0) / 100, 0.0)
    return VatDetail(
        margin=round(margin, 2),
        vat_base=round(vat_base, 2),
        vat_amount=round(vat_amount, 2),
        price_ttc=round(total_price + vat_amount, 2),
    )


def compute_commissions(
    price: float,
    primary_pct: Optional[float] = 0.0,
    primary_label: Optional[str] = "",
    secondary_pct: Optional[float] = None,
    secondary_label: Optional[str] = "",
) -> CommissionDetail:
    primary = round(price * primary_pct / 100, 2) if primary_pct and primary_pct > 0 else 0.0
    secondary = round(price * secondary_pct / 100, 2) if secondary_pct and secondary_pct > 0 else 0.0
    total = primary + secondary
    return CommissionDetail(
        gross_price=round(price, 2),
        primary_commission=primary,
        primary_commission_label=primary_label or "",
        secondary_commission=secondary,
        secondary_commission_label=secondary_label or "",
        total_commissions=round(total, 2),
        net_price=round(price - total, 2),
    )


class QuotationCalculator:

    def __init__(
        self,
        vehicle_capacity: int = DEFAULT_VEHICLE_CAPACITY,
        currency: str = "EUR",
        currency_rates: Optional[dict] = None,
    ):
        self.vehicle_capacity = vehicle_capacity
        self.currency = currency
        self.currency_rates = currency_rates

    def cost_line(self, item, pax: int, rooms: int, included: bool = True) -> ItemCostLine:
        """
        Cost one item. An excluded item keeps its own currency (rate 1.0)
        and a zero subtotal, so it never needs an exchange rate.
        """
        unit_cost = float(getattr(item, "unit_cost", None) or 0.0)
        quantity = float(getattr(item, "quantity", None) or 0.0)
        ratio_rule = getattr(item, "ratio_rule", None) or "per_group"

        rate = 1.0
        if included:
            rate = exchange_rate_for(getattr(item, "currency", None), self.currency, self.currency_rates)
        multiplier = ratio_multiplier(
            ratio_rule, pax, rooms,
            ratio_per=getattr(item, "ratio_per", None) or 1,
            vehicle_capacity=self.vehicle_capacity,
        )

        return ItemCostLine(
            item_id=getattr(item, "id", None),
            item_name=getattr(item, "name", None) or "",
            cost_nature_code=getattr(item, "cost_nature_code", None) or "MIS",
            ratio_rule=ratio_rule,
            unit_cost=unit_cost * rate,
            quantity=quantity,
            multiplier=multiplier,
            exchange_rate=rate,
            subtotal=unit_cost * rate * quantity * multiplier if included else 0.0,
            included=included,
        )

    def total_cost(self, items: Iterable, pax: int, rooms: int) -> float:
        return sum(self.cost_line(item, pax, rooms).subtotal for item in items)

    def quote(
        self,
        items: Iterable,
        pax: int,
        rooms: int,
        margin_pct: Optional[float] = None,
        margin_type: str = "margin",
        formula=None,
        trip_conditions: Optional[Iterable] = None,
    ) -> QuotationResult:
        """
        Price a list of items for one pax/room configuration.

        When a formula is given, items excluded by the trip's condition
        selection are listed with included=False and cost nothing.
        """
        if trip_conditions is not None:
            trip_conditions = list(trip_conditions)

        lines = []
        for item in items:
            included = formula is None or should_include_item(item, formula, trip_conditions)
            lines.append(self.cost_line(item, pax, rooms, included=included))

        total_cost = sum(line.subtotal for line in lines)
        effective_margin = margin_pct or DEFAULT_MARGIN_PCT
        selling_price = apply_margin(total_cost, effective_margin, margin_type)

        return QuotationResult(
            pax=pax,
            rooms=rooms,
            currency=self.currency,
            margin_type=margin_type,
            margin_pct=effective_margin,
            total_cost=total_cost,
            selling_price=selling_price,
            margin_amount=selling_price - total_cost,
            price_per_person=selling_price / pax if pax and pax > 0 else 0.0,
            lines=lines,
            categories=self.breakdown(lines),
        )

    @staticmethod
    def breakdown(lines: list[ItemCostLine]) -> list[CategoryBreakdown]:
        """Group cost lines by cost nature, largest share first."""
        categories: dict[str, CategoryBreakdown] = {}
        grand_total = 0.0

        for line in lines:
            if not line.included:
                continue
            code = line.cost_nature_code if line.cost_nature_code in COST_NATURE_NAMES else "MIS"
            if code not in categories:
                categories[code] = CategoryBreakdown(code=code, name=COST_NATURE_NAMES[code])
            categories[code].total_cost += line.subtotal
            categories[code].item_ids.append(line.item_id)
            grand_total += line.subtotal

        for category in categories.values():
            category.percentage = (category.total_cost / grand_total) * 100 if grand_total > 0 else 0.0

        return sorted(categories.values(), key=lambda c: -c.total_cost)
