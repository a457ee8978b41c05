from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
from datetime import date
import logging

from circuit_office.database import get_db
from circuit_office.schemas.trip import TripResponse, TripSummary
from circuit_office.services.trips import TripService
from circuit_office.api.errors import service_errors

logger = logging.getLogger(__name__)

router = APIRouter()


class TripCreate(BaseModel):
    name: str
    reference: Optional[str] = None
    type: str = "custom"
    destination_country: Optional[str] = None
    start_date: Optional[date] = None
    duration_days: Optional[int] = None
    language: str = "fr"
    default_currency: Optional[str] = None
    margin_pct: Optional[float] = None
    margin_type: Optional[str] = None
    notes: Optional[str] = None


class TripUpdate(BaseModel):
    name: Optional[str] = None
    reference: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    destination_country: Optional[str] = None
    start_date: Optional[date] = None
    duration_days: Optional[int] = None
    notes: Optional[str] = None


class TripSettingsUpdate(BaseModel):
    default_currency: Optional[str] = None
    margin_pct: Optional[float] = None
    margin_type: Optional[str] = None
    vat_pct: Optional[float] = None
    vat_calculation_mode: Optional[str] = None
    primary_commission_pct: Optional[float] = None
    primary_commission_label: Optional[str] = None
    secondary_commission_pct: Optional[float] = None
    secondary_commission_label: Optional[str] = None


class InclusionEntry(BaseModel):
    text: str
    default: bool = False


class InclusionsUpdate(BaseModel):
    inclusions: Optional[list[InclusionEntry]] = None
    exclusions: Optional[list[InclusionEntry]] = None


class TranslationCreate(BaseModel):
    language: str


class ManualRate(BaseModel):
    rate: float


@router.get("")
async def list_trips(
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    language: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    trips = TripService(db).search(type=type, status=status, language=language)
    return {"trips": [TripSummary.model_validate(t) for t in trips]}


@router.post("", response_model=TripResponse, status_code=201)
async def create_trip(data: TripCreate, db: Session = Depends(get_db)):
    with service_errors():
        return TripService(db).create(**data.model_dump())


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        return TripService(db).get(trip_id)


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(trip_id: int, data: TripUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return TripService(db).update(trip_id, **data.model_dump(exclude_unset=True))


@router.delete("/{trip_id}")
async def delete_trip(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        TripService(db).delete(trip_id)
    return {"message": "Trip deleted"}


@router.patch("/{trip_id}/settings", response_model=TripResponse)
async def update_trip_settings(trip_id: int, data: TripSettingsUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return TripService(db).update_settings(trip_id, **data.model_dump(exclude_unset=True))


@router.put("/{trip_id}/inclusions", response_model=TripResponse)
async def set_trip_inclusions(trip_id: int, data: InclusionsUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return TripService(db).set_inclusions(
            trip_id,
            inclusions=[e.model_dump() for e in data.inclusions] if data.inclusions is not None else None,
            exclusions=[e.model_dump() for e in data.exclusions] if data.exclusions is not None else None,
        )


# Translation variants

@router.get("/{trip_id}/translations")
async def list_translations(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        variants = TripService(db).translations(trip_id)
    return {"translations": [TripSummary.model_validate(t) for t in variants]}


@router.post("/{trip_id}/translations", response_model=TripResponse, status_code=201)
async def create_translation(trip_id: int, data: TranslationCreate, db: Session = Depends(get_db)):
    with service_errors():
        return TripService(db).create_translation(trip_id, data.language)


# Exchange rates

@router.post("/{trip_id}/exchange-rates/refresh")
async def refresh_exchange_rates(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        trip = await TripService(db).refresh_exchange_rates(trip_id)
    return {"trip_id": trip.id, "currency_rates": trip.currency_rates_json}


@router.put("/{trip_id}/exchange-rates/{currency}")
async def set_manual_rate(trip_id: int, currency: str, data: ManualRate, db: Session = Depends(get_db)):
    with service_errors():
        trip = TripService(db).set_manual_rate(trip_id, currency, data.rate)
    return {"trip_id": trip.id, "currency_rates": trip.currency_rates_json}
