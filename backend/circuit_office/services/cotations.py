"""
Cotations: named pricing snapshots of a trip for several group sizes.

A cotation prices the whole programme (day blocks and transversal
services) once per pax configuration. Its own condition selections take
precedence over the trip's, so one trip can be quoted e.g. in "Standard"
and "Luxe" without touching the programme.
"""
import logging
import math
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from circuit_office.config import get_settings
from circuit_office.models.trip import Trip
from circuit_office.models.cotation import TripCotation
from circuit_office.services.conditions import ConditionSelection, should_include_item
from circuit_office.services.quotation import (
    QuotationCalculator,
    MissingExchangeRateError,
    apply_margin,
)

logger = logging.getLogger(__name__)

COTATION_FIELDS = (
    "name", "mode", "min_pax", "max_pax", "margin_override_pct",
    "pax_configs_json", "condition_selections_json",
)


class CotationNotFound(Exception):
    pass


def rooms_for_pax(pax: int) -> int:
    """Double occupancy: one room per two travellers, rounded up."""
    return math.ceil(max(pax, 0) / 2)


def generate_pax_configs(min_pax: int, max_pax: int) -> list[dict]:
    if min_pax < 1 or max_pax < min_pax:
        raise ValueError(f"Invalid pax range {min_pax}..{max_pax}")
    return [
        {"label": f"{pax} pax", "pax": pax, "rooms": rooms_for_pax(pax)}
        for pax in range(min_pax, max_pax + 1)
    ]


def effective_selections(trip_conditions: list, overrides: Optional[dict]) -> list[ConditionSelection]:
    """
    Merge the trip's condition selections with a cotation's overrides.

    overrides maps condition_id (JSON keys are strings) to an option id.
    An override for a condition the trip has not activated activates it.
    """
    overrides = {int(k): v for k, v in (overrides or {}).items()}
    selections = []
    for tc in trip_conditions:
        overridden = tc.condition_id in overrides
        selections.append(ConditionSelection(
            condition_id=tc.condition_id,
            selected_option_id=overrides.pop(tc.condition_id) if overridden else tc.selected_option_id,
            is_active=True if overridden else tc.is_active,
            options=list(tc.options),
        ))
    for condition_id, option_id in overrides.items():
        selections.append(ConditionSelection(condition_id=condition_id, selected_option_id=option_id))
    return selections


class CotationService:

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def get(self, cotation_id: int) -> TripCotation:
        cotation = self.db.query(TripCotation).filter(TripCotation.id == cotation_id).first()
        if not cotation:
            raise CotationNotFound(f"Cotation {cotation_id} not found")
        return cotation

    def list_for_trip(self, trip_id: int) -> list[TripCotation]:
        return (
            self.db.query(TripCotation)
            .filter(TripCotation.trip_id == trip_id)
            .order_by(TripCotation.id)
            .all()
        )

    def create(self, trip_id: int, name: str, **fields) -> TripCotation:
        data = {k: v for k, v in fields.items() if k in COTATION_FIELDS and v is not None}
        cotation = TripCotation(trip_id=trip_id, name=name, **data)
        if cotation.mode in (None, "range") and not data.get("pax_configs_json"):
            cotation.mode = "range"
            cotation.pax_configs_json = generate_pax_configs(
                data.get("min_pax", 2), data.get("max_pax", 10)
            )
        self.db.add(cotation)
        self.db.commit()
        self.db.refresh(cotation)
        return cotation

    def update(self, cotation_id: int, **fields) -> TripCotation:
        cotation = self.get(cotation_id)
        for key, value in fields.items():
            if key in COTATION_FIELDS and value is not None:
                setattr(cotation, key, value)
        # Any change invalidates the stored results
        cotation.status = "draft"
        self.db.commit()
        self.db.refresh(cotation)
        return cotation

    def delete(self, cotation_id: int) -> None:
        self.db.delete(self.get(cotation_id))
        self.db.commit()

    def regenerate_pax(self, cotation_id: int) -> TripCotation:
        cotation = self.get(cotation_id)
        cotation.pax_configs_json = generate_pax_configs(cotation.min_pax, cotation.max_pax)
        cotation.status = "draft"
        self.db.commit()
        self.db.refresh(cotation)
        return cotation

    # -- calculation -----------------------------------------------------

    def calculate(self, cotation_id: int) -> TripCotation:
        cotation = self.get(cotation_id)
        trip = self.db.query(Trip).filter(Trip.id == cotation.trip_id).first()

        cotation.results_json = self.price_trip(
            trip,
            pax_configs=cotation.pax_configs_json or [],
            condition_overrides=cotation.condition_selections_json,
            margin_pct=cotation.margin_override_pct,
        )
        cotation.status = "calculated"
        cotation.calculated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(cotation)
        logger.info(f"Calculated cotation {cotation.id} '{cotation.name}' for trip {trip.id}")
        return cotation

    def calculate_all(self, trip_id: int) -> list[TripCotation]:
        return [self.calculate(c.id) for c in self.list_for_trip(trip_id)]

    def price_trip(
        self,
        trip: Trip,
        pax_configs: list[dict],
        condition_overrides: Optional[dict] = None,
        margin_pct: Optional[float] = None,
    ) -> dict:
        """
        Price every pax configuration of a trip.

        Items without an exchange rate are skipped and reported in
        "warnings" so one missing rate does not block the whole cotation.
        """
        calculator = QuotationCalculator(
            vehicle_capacity=self.settings.vehicle_capacity,
            currency=trip.default_currency or self.settings.default_currency,
            currency_rates=trip.currency_rates_json,
        )
        selections = effective_selections(trip.trip_conditions, condition_overrides)
        margin = margin_pct if margin_pct is not None else trip.margin_pct
        margin_type = trip.margin_type or "margin"

        warnings: set[str] = set()
        configs = []
        for config in pax_configs:
            pax = int(config.get("pax") or 0)
            rooms = int(config["rooms"]) if config.get("rooms") is not None else rooms_for_pax(pax)

            days = []
            for day in trip.days:
                day_cost = sum(
                    self._formula_cost(calculator, f, pax, rooms, selections, warnings)
                    for f in day.formulas
                )
                days.append({"day_id": day.id, "day_number": day.day_number, "total_cost": round(day_cost, 2)})

            transversal = []
            for formula in trip.transversal_formulas:
                cost = self._formula_cost(calculator, formula, pax, rooms, selections, warnings)
                transversal.append({"formula_id": formula.id, "name": formula.name, "total_cost": round(cost, 2)})

            total_cost = sum(d["total_cost"] for d in days) + sum(t["total_cost"] for t in transversal)
            total_price = apply_margin(total_cost, margin, margin_type)
            configs.append({
                "label": config.get("label") or f"{pax} pax",
                "pax": pax,
                "rooms": rooms,
                "total_cost": round(total_cost, 2),
                "total_price": round(total_price, 2),
                "total_profit": round(total_price - total_cost, 2),
                "price_per_person": round(total_price / pax, 2) if pax > 0 else 0.0,
                "days": days,
                "transversal_formulas": transversal,
            })

        return {
            "currency": calculator.currency,
            "margin_pct": margin or self.settings.default_margin_pct,
            "margin_type": margin_type,
            "configs": configs,
            "warnings": sorted(warnings),
        }

    @staticmethod
    def _formula_cost(calculator, formula, pax, rooms, selections, warnings) -> float:
        included = []
        for item in formula.items:
            if not should_include_item(item, formula, selections):
                continue
            try:
                calculator.cost_line(item, pax, rooms)
            except MissingExchangeRateError as e:
                warnings.add(e.message)
                continue
            included.append(item)
        result = calculator.quote(included, pax, rooms, formula=formula, trip_conditions=selections)
        return result.total_cost
