from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Any, Optional
import logging

from circuit_office.database import get_db
from circuit_office.schemas.trip import TripDayResponse, FormulaResponse, ItemResponse
from circuit_office.services.trip_structure import TripStructureService, StructureError
from circuit_office.services.dnd import DragDropDispatcher, DropEvent, foreign_references
from circuit_office.services import block_meta
from circuit_office.services.seasons import (
    AccommodationSeason,
    RoomRate,
    resolve_season_for_date,
    build_rate_map,
    trip_day_date,
)
from circuit_office.api.errors import service_errors

logger = logging.getLogger(__name__)

router = APIRouter()


class DayCreate(BaseModel):
    title: Optional[str] = None
    location: Optional[str] = None
    day_number_end: Optional[int] = None
    breakfast_included: bool = False
    lunch_included: bool = False
    dinner_included: bool = False


class DayUpdate(BaseModel):
    title: Optional[str] = None
    location: Optional[str] = None
    day_number_end: Optional[int] = None
    breakfast_included: Optional[bool] = None
    lunch_included: Optional[bool] = None
    dinner_included: Optional[bool] = None


class DayOrder(BaseModel):
    day_ids: list[int]


class BlockCreate(BaseModel):
    name: str
    block_type: str = "text"
    description_html: Optional[str] = None
    condition_id: Optional[int] = None
    sort_order: Optional[int] = None
    service_day_start: Optional[int] = None
    service_day_end: Optional[int] = None


class BlockUpdate(BaseModel):
    name: Optional[str] = None
    block_type: Optional[str] = None
    description_html: Optional[str] = None
    condition_id: Optional[int] = None
    sort_order: Optional[int] = None
    service_day_start: Optional[int] = None
    service_day_end: Optional[int] = None


class BlockOrder(BaseModel):
    block_ids: list[int]


class BlockMove(BaseModel):
    target_day_id: int
    sort_order: int = 0


class BlockDuplicate(BaseModel):
    target_day_id: int
    sort_order: Optional[int] = None


class CopyBlocks(BaseModel):
    source_day_id: int


class ItemCreate(BaseModel):
    name: str
    cost_nature_code: str = "MIS"
    currency: Optional[str] = None
    unit_cost: float = 0.0
    quantity: float = 1.0
    ratio_rule: str = "per_group"
    ratio_per: Optional[int] = None
    ratio_categories: Optional[str] = None
    payment_flow: Optional[str] = None
    price_includes_vat: bool = False
    condition_option_id: Optional[int] = None
    sort_order: Optional[int] = None
    notes: Optional[str] = None


class ItemUpdate(BaseModel):
    name: Optional[str] = None
    cost_nature_code: Optional[str] = None
    currency: Optional[str] = None
    unit_cost: Optional[float] = None
    quantity: Optional[float] = None
    ratio_rule: Optional[str] = None
    ratio_per: Optional[int] = None
    ratio_categories: Optional[str] = None
    payment_flow: Optional[str] = None
    price_includes_vat: Optional[bool] = None
    condition_option_id: Optional[int] = None
    sort_order: Optional[int] = None
    notes: Optional[str] = None


class BlockMetaUpdate(BaseModel):
    meta: dict[str, Any]
    # Free text kept after the prefix for activity and roadbook blocks
    text: Optional[str] = None


class RoomRateResolveRequest(BaseModel):
    seasons: list[AccommodationSeason] = []
    rates: list[RoomRate] = []
    preferred_bed_type: str = "DBL"


# Days

@router.post("/trips/{trip_id}/days", response_model=TripDayResponse, status_code=201)
async def create_day(trip_id: int, data: DayCreate, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).create_day(trip_id, **data.model_dump())


@router.patch("/days/{day_id}", response_model=TripDayResponse)
async def update_day(day_id: int, data: DayUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).update_day(day_id, **data.model_dump(exclude_unset=True))


@router.delete("/days/{day_id}")
async def delete_day(day_id: int, db: Session = Depends(get_db)):
    with service_errors():
        TripStructureService(db).delete_day(day_id)
    return {"message": "Day deleted"}


@router.post("/trips/{trip_id}/days/reorder", response_model=list[TripDayResponse])
async def reorder_days(trip_id: int, data: DayOrder, db: Session = Depends(get_db)):
    with service_errors():
        service = TripStructureService(db)
        if any(service.get_day(i).trip_id != trip_id for i in data.day_ids):
            raise StructureError(f"Days {data.day_ids} do not all belong to trip {trip_id}")
        return service.reorder_days(data.day_ids)


# Blocks

@router.get("/days/{day_id}/blocks", response_model=list[FormulaResponse])
async def list_day_blocks(day_id: int, db: Session = Depends(get_db)):
    with service_errors():
        service = TripStructureService(db)
        return service.day_blocks(service.get_day(day_id).id)


@router.post("/days/{day_id}/blocks", response_model=FormulaResponse, status_code=201)
async def create_block(day_id: int, data: BlockCreate, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).create_block(day_id, **data.model_dump(exclude_none=True))


@router.patch("/blocks/{formula_id}", response_model=FormulaResponse)
async def update_block(formula_id: int, data: BlockUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).update_block(formula_id, **data.model_dump(exclude_unset=True))


@router.delete("/blocks/{formula_id}")
async def delete_block(formula_id: int, db: Session = Depends(get_db)):
    with service_errors():
        TripStructureService(db).delete_block(formula_id)
    return {"message": "Block deleted"}


@router.post("/days/{day_id}/blocks/reorder", response_model=list[FormulaResponse])
async def reorder_blocks(day_id: int, data: BlockOrder, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).reorder_blocks(day_id, data.block_ids)


@router.post("/blocks/{formula_id}/move", response_model=FormulaResponse)
async def move_block(formula_id: int, data: BlockMove, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).move_block(formula_id, data.target_day_id, data.sort_order)


@router.post("/blocks/{formula_id}/duplicate", response_model=FormulaResponse, status_code=201)
async def duplicate_block(formula_id: int, data: BlockDuplicate, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).duplicate_block(formula_id, data.target_day_id, data.sort_order)


@router.post("/days/{day_id}/copy-blocks", response_model=list[FormulaResponse], status_code=201)
async def copy_day_blocks(day_id: int, data: CopyBlocks, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).copy_day_blocks(data.source_day_id, day_id)


@router.get("/trips/{trip_id}/transversal", response_model=list[FormulaResponse])
async def list_transversal_services(trip_id: int, db: Session = Depends(get_db)):
    with service_errors():
        service = TripStructureService(db)
        return service.transversal_blocks(service.get_trip(trip_id).id)


@router.post("/trips/{trip_id}/transversal", response_model=FormulaResponse, status_code=201)
async def create_transversal_service(trip_id: int, data: BlockCreate, db: Session = Depends(get_db)):
    fields = data.model_dump(exclude_none=True)
    name = fields.pop("name")
    with service_errors():
        return TripStructureService(db).create_transversal_block(trip_id, name, **fields)


# Block metadata

@router.get("/blocks/{formula_id}/meta")
async def get_block_meta(formula_id: int, db: Session = Depends(get_db)):
    with service_errors():
        block = TripStructureService(db).get_block(formula_id)

    meta = block_meta.parse_block_meta(block.block_type, block.description_html)
    text = None
    if block.block_type == "activity":
        _, text = block_meta.parse_activity_meals(block.description_html)
    elif block.block_type == "roadbook":
        text = block_meta.strip_roadbook_meta(block.description_html)

    return {
        "block_id": block.id,
        "block_type": block.block_type,
        "meta": meta.model_dump() if meta is not None else None,
        "text": text,
    }


@router.put("/blocks/{formula_id}/meta", response_model=FormulaResponse)
async def set_block_meta(formula_id: int, data: BlockMetaUpdate, db: Session = Depends(get_db)):
    with service_errors():
        service = TripStructureService(db)
        block = service.get_block(formula_id)
        html = _encode_meta(block.block_type, data)
        return service.update_block(formula_id, description_html=html)


def _encode_meta(block_type: str, data: BlockMetaUpdate) -> str:
    text = data.text or ""
    if block_type == "accommodation":
        return block_meta.serialize_accommodation_meta(block_meta.AccommodationMeta(**data.meta))
    if block_type == "transport":
        return block_meta.serialize_transport_meta(block_meta.TransportMeta(**data.meta))
    if block_type == "activity":
        return block_meta.serialize_activity_meals(block_meta.ActivityMeals(**data.meta), text)
    if block_type == "roadbook":
        meta = block_meta.RoadbookMeta(**data.meta)
        if meta.category not in block_meta.ROADBOOK_CATEGORIES:
            raise StructureError(f"Unknown roadbook category '{meta.category}'")
        return block_meta.serialize_roadbook_meta(meta, text)
    raise StructureError(f"Blocks of type '{block_type}' carry no metadata")


# Items

@router.post("/blocks/{formula_id}/items", response_model=ItemResponse, status_code=201)
async def create_item(formula_id: int, data: ItemCreate, db: Session = Depends(get_db)):
    fields = data.model_dump(exclude_none=True)
    name = fields.pop("name")
    with service_errors():
        return TripStructureService(db).create_item(formula_id, name, **fields)


@router.patch("/items/{item_id}", response_model=ItemResponse)
async def update_item(item_id: int, data: ItemUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return TripStructureService(db).update_item(item_id, **data.model_dump(exclude_unset=True))


@router.delete("/items/{item_id}")
async def delete_item(item_id: int, db: Session = Depends(get_db)):
    with service_errors():
        TripStructureService(db).delete_item(item_id)
    return {"message": "Item deleted"}


# Drag & drop

@router.post("/trips/{trip_id}/dnd")
async def handle_drop(trip_id: int, event: DropEvent, db: Session = Depends(get_db)):
    """Apply a finished drag from the programme editor."""
    with service_errors():
        service = TripStructureService(db)
        service.get_trip(trip_id)
        day_blocks = service.day_blocks_map(trip_id)
        day_ids = [d.id for d in service.trip_days(trip_id)]
        foreign = foreign_references(event, day_blocks, day_ids)
        if foreign:
            raise StructureError(f"Drop references {', '.join(foreign)} outside trip {trip_id}")

    outcome = DragDropDispatcher(service).handle_drop(event, day_blocks=day_blocks, day_ids=day_ids)
    if not outcome.ok:
        db.rollback()

    return {
        "operation": outcome.operation.kind.value if outcome.operation else None,
        "ok": outcome.ok,
        "error": outcome.error,
        "days": [
            TripDayResponse.model_validate(d) for d in service.trip_days(trip_id)
        ],
    }


# Accommodation rates

@router.post("/days/{day_id}/room-rates/resolve")
async def resolve_room_rates(day_id: int, data: RoomRateResolveRequest, db: Session = Depends(get_db)):
    """Pick the applicable rate of each room category for the date of a trip day."""
    with service_errors():
        service = TripStructureService(db)
        day = service.get_day(day_id)
        trip = service.get_trip(day.trip_id)

    on_date = trip_day_date(trip.start_date, day.day_number)
    season_id = resolve_season_for_date(data.seasons, on_date) if on_date else None
    rates = build_rate_map(data.rates, season_id, data.preferred_bed_type)

    return {
        "day_id": day.id,
        "date": on_date.isoformat() if on_date else None,
        "season_id": season_id,
        "rates": {str(room_id): rate.model_dump() for room_id, rate in rates.items()},
    }
