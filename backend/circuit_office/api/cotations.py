from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from dataclasses import asdict
import logging

from circuit_office.config import get_settings
from circuit_office.database import get_db
from circuit_office.services.cotations import CotationService, rooms_for_pax
from circuit_office.services.currency import CurrencyService
from circuit_office.services.quotation import QuotationCalculator, compute_vat, compute_commissions
from circuit_office.services.trip_structure import TripStructureService
from circuit_office.api.errors import service_errors

logger = logging.getLogger(__name__)

router = APIRouter()


class PaxConfig(BaseModel):
    label: Optional[str] = None
    pax: int
    rooms: Optional[int] = None


class CotationCreate(BaseModel):
    name: str
    mode: str = "range"
    min_pax: int = 2
    max_pax: int = 10
    margin_override_pct: Optional[float] = None
    pax_configs: Optional[list[PaxConfig]] = None
    condition_selections: Optional[dict[int, int]] = None


class CotationUpdate(BaseModel):
    name: Optional[str] = None
    mode: Optional[str] = None
    min_pax: Optional[int] = None
    max_pax: Optional[int] = None
    margin_override_pct: Optional[float] = None
    pax_configs: Optional[list[PaxConfig]] = None
    condition_selections: Optional[dict[int, int]] = None


class CotationResponse(BaseModel):
    id: int
    trip_id: int
    name: str
    mode: str
    min_pax: Optional[int] = None
    max_pax: Optional[int] = None
    margin_override_pct: Optional[float] = None
    pax_configs_json: Optional[list] = None
    condition_selections_json: Optional[dict] = None
    results_json: Optional[dict] = None
    status: str
    calculated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuickQuoteRequest(BaseModel):
    formula_id: int
    pax: int
    rooms: Optional[int] = None
    margin_pct: Optional[float] = None


def _service_fields(data) -> dict:
    fields = data.model_dump(exclude_unset=True, exclude={"pax_configs", "condition_selections"})
    if data.pax_configs is not None:
        fields["pax_configs_json"] = [
            {
                "label": c.label or f"{c.pax} pax",
                "pax": c.pax,
                "rooms": c.rooms if c.rooms is not None else rooms_for_pax(c.pax),
            }
            for c in data.pax_configs
        ]
    if data.condition_selections is not None:
        # JSON object keys are strings
        fields["condition_selections_json"] = {str(k): v for k, v in data.condition_selections.items()}
    return fields


@router.get("/trips/{trip_id}", response_model=list[CotationResponse])
async def list_cotations(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        TripStructureService(db).get_trip(trip_id)
    return CotationService(db).list_for_trip(trip_id)


@router.post("/trips/{trip_id}", response_model=CotationResponse, status_code=201)
async def create_cotation(trip_id: int, data: CotationCreate, db: Session = Depends(get_db)):
    fields = _service_fields(data)
    fields.pop("name", None)
    with service_errors():
        TripStructureService(db).get_trip(trip_id)
        return CotationService(db).create(trip_id, data.name, **fields)


@router.patch("/{cotation_id}", response_model=CotationResponse)
async def update_cotation(cotation_id: int, data: CotationUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return CotationService(db).update(cotation_id, **_service_fields(data))


@router.delete("/{cotation_id}")
async def delete_cotation(cotation_id: int, db: Session = Depends(get_db)):
    with service_errors():
        CotationService(db).delete(cotation_id)
    return {"message": "Cotation deleted"}


@router.post("/{cotation_id}/regenerate-pax", response_model=CotationResponse)
async def regenerate_pax(cotation_id: int, db: Session = Depends(get_db)):
    with service_errors():
        return CotationService(db).regenerate_pax(cotation_id)


@router.post("/{cotation_id}/calculate", response_model=CotationResponse)
async def calculate_cotation(cotation_id: int, db: Session = Depends(get_db)):
    with service_errors():
        return CotationService(db).calculate(cotation_id)


@router.post("/trips/{trip_id}/calculate-all", response_model=list[CotationResponse])
async def calculate_all(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        TripStructureService(db).get_trip(trip_id)
        return CotationService(db).calculate_all(trip_id)


@router.post("/quick-quote")
async def quick_quote(data: QuickQuoteRequest, db: Session = Depends(get_db)):
    """Price a single block for one group size, with VAT and commissions."""
    settings = get_settings()
    with service_errors():
        service = TripStructureService(db)
        formula = service.get_block(data.formula_id)
        trip = service.get_trip(formula.trip_id)

        rooms = data.rooms if data.rooms is not None else rooms_for_pax(data.pax)
        calculator = QuotationCalculator(
            vehicle_capacity=settings.vehicle_capacity,
            currency=trip.default_currency or settings.default_currency,
            currency_rates=trip.currency_rates_json,
        )
        result = calculator.quote(
            formula.items,
            data.pax,
            rooms,
            margin_pct=data.margin_pct if data.margin_pct is not None else trip.margin_pct,
            margin_type=trip.margin_type or "margin",
            formula=formula,
            trip_conditions=trip.trip_conditions,
        )

    vat = compute_vat(
        result.total_cost,
        result.selling_price,
        trip.vat_pct,
        trip.vat_calculation_mode or "on_margin",
        trip.primary_commission_pct,
    )
    commissions = compute_commissions(
        result.selling_price,
        trip.primary_commission_pct,
        trip.primary_commission_label,
        trip.secondary_commission_pct,
        trip.secondary_commission_label,
    )

    return {
        **result.as_dict(),
        "vat": asdict(vat),
        "commissions": asdict(commissions),
        "formatted": {
            "selling_price": CurrencyService.format_price(result.selling_price, result.currency),
            "price_per_person": CurrencyService.format_price(result.price_per_person, result.currency),
        },
    }
