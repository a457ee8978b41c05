import logging
from typing import Optional
from sqlalchemy.orm import Session

from circuit_office.models.trip import Trip, TripDay
from circuit_office.models.formula import Formula
from circuit_office.models.item import Item
from circuit_office.models.condition import TripCondition
from circuit_office.services.currency import CurrencyService
from circuit_office.services.trip_structure import (
    TripStructureService,
    StructureError,
    ITEM_FIELDS,
)

logger = logging.getLogger(__name__)

TRIP_FIELDS = (
    "name", "reference", "type", "status", "destination_country",
    "start_date", "duration_days", "notes",
)
SETTINGS_FIELDS = (
    "default_currency", "margin_pct", "margin_type", "vat_pct",
    "vat_calculation_mode", "primary_commission_pct", "primary_commission_label",
    "secondary_commission_pct", "secondary_commission_label",
)


class TripService:
    """Trip records, their pricing settings, translations and currency rates."""

    def __init__(self, db: Session):
        self.db = db
        self.structure = TripStructureService(db)

    def get(self, trip_id: int) -> Trip:
        return self.structure.get_trip(trip_id)

    def search(self, type: Optional[str] = None, status: Optional[str] = None,
             language: Optional[str] = None) -> list[Trip]:
        query = self.db.query(Trip).order_by(Trip.created_at.desc(), Trip.id.desc())
        if type:
            query = query.filter(Trip.type == type)
        if status:
            query = query.filter(Trip.status == status)
        if language:
            query = query.filter(Trip.language == language)
        return query.all()

    def create(self, name: str, **fields) -> Trip:
        allowed = TRIP_FIELDS + SETTINGS_FIELDS + ("language", "inclusions", "exclusions")
        trip = Trip(name=name, **{k: v for k, v in fields.items() if k in allowed and v is not None})
        self.db.add(trip)
        self.db.commit()
        self.db.refresh(trip)
        logger.info(f"Created trip {trip.id} '{trip.name}'")
        return trip

    def update(self, trip_id: int, **fields) -> Trip:
        return self._patch(trip_id, TRIP_FIELDS, fields)

    def update_settings(self, trip_id: int, **fields) -> Trip:
        if fields.get("margin_type") not in (None, "margin", "markup"):
            raise StructureError(f"Unknown margin type {fields['margin_type']}")
        if fields.get("vat_calculation_mode") not in (None, "on_margin", "on_selling_price"):
            raise StructureError(f"Unknown VAT mode {fields['vat_calculation_mode']}")
        if fields.get("default_currency"):
            fields["default_currency"] = fields["default_currency"].upper()
        return self._patch(trip_id, SETTINGS_FIELDS, fields)

    def delete(self, trip_id: int) -> None:
        trip = self.get(trip_id)
        self.db.delete(trip)
        self.db.commit()

    def _patch(self, trip_id: int, allowed: tuple, fields: dict) -> Trip:
        trip = self.get(trip_id)
        for key, value in fields.items():
            if key in allowed and value is not None:
                setattr(trip, key, value)
        self.db.commit()
        self.db.refresh(trip)
        return trip

    # -- inclusions / exclusions -----------------------------------------

    def set_inclusions(self, trip_id: int, inclusions: Optional[list] = None,
                       exclusions: Optional[list] = None) -> Trip:
        """Replace the lists; each entry is {"text": ..., "default": bool}."""
        trip = self.get(trip_id)
        if inclusions is not None:
            trip.inclusions = [dict(entry) for entry in inclusions]
        if exclusions is not None:
            trip.exclusions = [dict(entry) for entry in exclusions]
        self.db.commit()
        self.db.refresh(trip)
        return trip

    # -- translations ----------------------------------------------------

    def translations(self, trip_id: int) -> list[Trip]:
        trip = self.get(trip_id)
        return (
            self.db.query(Trip)
            .filter(Trip.source_trip_id == trip.id)
            .order_by(Trip.language)
            .all()
        )

    def create_translation(self, trip_id: int, language: str) -> Trip:
        """
        Copy a trip's structure under another language.

        Days, blocks, items and trip conditions are copied as they are;
        translating their text is left to the editor.
        """
        source = self.get(trip_id)
        language = language.lower()
        if language == (source.language or "").lower():
            raise StructureError(f"Trip {trip_id} is already in '{language}'")
        existing = [t for t in self.translations(trip_id) if t.language == language]
        if existing:
            raise StructureError(f"Trip {trip_id} already has a '{language}' variant ({existing[0].id})")

        copy = Trip(
            name=source.name,
            language=language,
            source_trip_id=source.id,
            inclusions=list(source.inclusions or []),
            exclusions=list(source.exclusions or []),
            currency_rates_json=source.currency_rates_json,
            **{f: getattr(source, f) for f in TRIP_FIELDS + SETTINGS_FIELDS if f != "name"},
        )
        self.db.add(copy)
        self.db.flush()

        for day in source.days:
            day_copy = TripDay(
                trip_id=copy.id,
                day_number=day.day_number,
                day_number_end=day.day_number_end,
                title=day.title,
                location=day.location,
                breakfast_included=day.breakfast_included,
                lunch_included=day.lunch_included,
                dinner_included=day.dinner_included,
                sort_order=day.sort_order,
            )
            self.db.add(day_copy)
            self.db.flush()
            for block in day.formulas:
                self._copy_formula(block, copy.id, day_copy.id)

        for block in source.transversal_formulas:
            self._copy_formula(block, copy.id, None)

        for tc in source.trip_conditions:
            self.db.add(TripCondition(
                trip_id=copy.id,
                condition_id=tc.condition_id,
                selected_option_id=tc.selected_option_id,
                is_active=tc.is_active,
            ))

        self.db.commit()
        self.db.refresh(copy)
        logger.info(f"Created '{language}' variant {copy.id} of trip {source.id}")
        return copy

    def _copy_formula(self, source: Formula, trip_id: int, day_id: Optional[int]) -> Formula:
        copy = Formula(
            trip_id=trip_id,
            trip_day_id=day_id,
            name=source.name,
            block_type=source.block_type,
            description_html=source.description_html,
            condition_id=source.condition_id,
            sort_order=source.sort_order,
            service_day_start=source.service_day_start,
            service_day_end=source.service_day_end,
        )
        copy.items = [
            Item(**{field: getattr(item, field) for field in ITEM_FIELDS})
            for item in source.items
        ]
        self.db.add(copy)
        return copy

    # -- exchange rates --------------------------------------------------

    def item_currencies(self, trip: Trip) -> list[str]:
        return sorted({
            item.currency.upper()
            for formula in trip.formulas
            for item in formula.items
            if item.currency
        })

    async def refresh_exchange_rates(self, trip_id: int) -> Trip:
        trip = self.get(trip_id)
        selling = trip.default_currency or "EUR"
        trip.currency_rates_json = await CurrencyService.build_trip_rates(
            self.item_currencies(trip),
            selling,
            existing=trip.currency_rates_json,
        )
        self.db.commit()
        self.db.refresh(trip)
        logger.info(f"Refreshed exchange rates of trip {trip.id}")
        return trip

    def set_manual_rate(self, trip_id: int, currency: str, rate: float) -> Trip:
        if rate is None or rate <= 0:
            raise StructureError("Exchange rate must be positive")
        trip = self.get(trip_id)
        data = dict(trip.currency_rates_json or {})
        data.setdefault("base_currency", trip.default_currency or "EUR")
        rates = dict(data.get("rates", {}))
        rates[currency.upper()] = {"rate": rate, "source": "manual"}
        data["rates"] = rates
        # Reassign so the JSON column is flagged dirty
        trip.currency_rates_json = data
        self.db.commit()
        self.db.refresh(trip)
        return trip


