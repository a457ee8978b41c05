"""Tests for TripService (settings, translations, exchange rates)."""
import pytest
from unittest.mock import AsyncMock, patch

from circuit_office.models import Item, Condition, ConditionOption, TripCondition
from circuit_office.services.currency import CurrencyService
from circuit_office.services.trips import TripService
from circuit_office.services.trip_structure import StructureError, StructureNotFound


class TestTrips:
    def test_create_and_filter(self, db_session):
        service = TripService(db_session)
        service.create("Vietnam north to south", type="gir", language="fr")
        service.create("Cambodia", type="custom", language="en")

        assert [t.name for t in service.search(type="gir")] == ["Vietnam north to south"]
        assert [t.name for t in service.search(language="en")] == ["Cambodia"]
        assert len(service.search()) == 2

    def test_update_ignores_unknown_fields(self, db_session, sample_trip):
        service = TripService(db_session)
        trip = service.update(sample_trip.id, name="Northern Thailand (10 days)", margin_pct=90)
        assert trip.name == "Northern Thailand (10 days)"
        assert trip.margin_pct == 20.0

    def test_delete(self, db_session, sample_trip):
        service = TripService(db_session)
        service.delete(sample_trip.id)
        with pytest.raises(StructureNotFound):
            service.get(sample_trip.id)


class TestSettings:
    def test_update_settings(self, db_session, sample_trip):
        trip = TripService(db_session).update_settings(
            sample_trip.id, default_currency="usd", margin_type="markup", vat_pct=20.0,
        )
        assert trip.default_currency == "USD"
        assert trip.margin_type == "markup"
        assert trip.vat_pct == 20.0

    @pytest.mark.parametrize("fields", [
        {"margin_type": "commission"},
        {"vat_calculation_mode": "on_cost"},
    ])
    def test_invalid_settings(self, db_session, sample_trip, fields):
        with pytest.raises(StructureError):
            TripService(db_session).update_settings(sample_trip.id, **fields)

    def test_inclusions(self, db_session, sample_trip):
        trip = TripService(db_session).set_inclusions(
            sample_trip.id,
            inclusions=[{"text": "All transfers", "default": True}],
        )
        assert trip.inclusions == [{"text": "All transfers", "default": True}]
        assert trip.exclusions == []


class TestTranslations:
    def test_translation_copies_structure(self, db_session, sample_trip):
        comfort = Condition(name="Comfort")
        comfort.options = [ConditionOption(label="Standard")]
        db_session.add(comfort)
        db_session.flush()
        db_session.add(TripCondition(trip_id=sample_trip.id, condition_id=comfort.id,
                                     selected_option_id=comfort.options[0].id))
        db_session.commit()

        service = TripService(db_session)
        copy = service.create_translation(sample_trip.id, "EN")

        assert copy.id != sample_trip.id
        assert copy.language == "en"
        assert copy.source_trip_id == sample_trip.id
        assert copy.margin_pct == 20.0
        assert [d.title for d in copy.days] == ["Chiang Mai", "Doi Suthep", "Chiang Rai"]
        assert [f.name for f in copy.days[0].formulas] == ["Arrival"]
        assert [i.name for i in copy.days[0].formulas[0].items] == ["Hotel", "Transfer"]
        assert [f.name for f in copy.transversal_formulas] == ["Insurance"]
        assert copy.trip_conditions[0].selected_option_id == comfort.options[0].id

        # The source keeps its own items
        assert db_session.query(Item).filter(Item.name == "Hotel").count() == 2
        assert [t.id for t in service.translations(sample_trip.id)] == [copy.id]

    def test_same_language_is_rejected(self, db_session, sample_trip):
        with pytest.raises(StructureError):
            TripService(db_session).create_translation(sample_trip.id, "fr")

    def test_one_variant_per_language(self, db_session, sample_trip):
        service = TripService(db_session)
        service.create_translation(sample_trip.id, "en")
        with pytest.raises(StructureError):
            service.create_translation(sample_trip.id, "en")


class TestExchangeRates:
    def test_manual_rate(self, db_session, sample_trip):
        trip = TripService(db_session).set_manual_rate(sample_trip.id, "thb", 0.026)
        assert trip.currency_rates_json == {
            "base_currency": "EUR",
            "rates": {"THB": {"rate": 0.026, "source": "manual"}},
        }

    @pytest.mark.parametrize("rate", [0, -1.5])
    def test_manual_rate_must_be_positive(self, db_session, sample_trip, rate):
        with pytest.raises(StructureError):
            TripService(db_session).set_manual_rate(sample_trip.id, "THB", rate)

    def test_item_currencies(self, db_session, sample_trip):
        hotel = db_session.query(Item).filter(Item.name == "Hotel").one()
        hotel.currency = "thb"
        db_session.commit()
        assert TripService(db_session).item_currencies(sample_trip) == ["THB"]

    async def test_refresh_keeps_manual_rates(self, db_session, sample_trip):
        for name, currency in (("Hotel", "THB"), ("Guide", "USD")):
            item = db_session.query(Item).filter(Item.name == name).one()
            item.currency = currency
        db_session.commit()

        service = TripService(db_session)
        service.set_manual_rate(sample_trip.id, "THB", 0.03)
        with patch.object(CurrencyService, "get_rates", AsyncMock(return_value={"THB": 40.0, "USD": 1.25})):
            trip = await service.refresh_exchange_rates(sample_trip.id)

        rates = trip.currency_rates_json["rates"]
        assert rates["THB"] == {"rate": 0.03, "source": "manual"}
        assert rates["USD"]["rate"] == 0.8
        assert rates["USD"]["source"] == "api"
