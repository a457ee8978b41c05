from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
import logging

from circuit_office.database import get_db
from circuit_office.models import Condition, ConditionOption, TripCondition, Trip, Formula
from circuit_office.services.conditions import check_variant_group, variant_option_label

logger = logging.getLogger(__name__)

router = APIRouter()

APPLIES_TO = ("all", "accommodation", "activity", "transport", "service")


class OptionCreate(BaseModel):
    label: str
    sort_order: Optional[int] = None


class OptionResponse(BaseModel):
    id: int
    condition_id: int
    label: str
    sort_order: int = 0

    class Config:
        from_attributes = True


class ConditionCreate(BaseModel):
    name: str
    applies_to: str = "all"
    options: list[OptionCreate] = []


class ConditionUpdate(BaseModel):
    name: Optional[str] = None
    applies_to: Optional[str] = None


class ConditionResponse(BaseModel):
    id: int
    name: str
    applies_to: str
    options: list[OptionResponse] = []

    class Config:
        from_attributes = True


class TripConditionUpsert(BaseModel):
    selected_option_id: Optional[int] = None
    is_active: bool = True


class TripConditionResponse(BaseModel):
    id: int
    trip_id: int
    condition_id: int
    condition_name: str
    selected_option_id: Optional[int] = None
    is_active: bool
    options: list[OptionResponse] = []


def _get_condition(db: Session, condition_id: int) -> Condition:
    condition = db.query(Condition).filter(Condition.id == condition_id).first()
    if not condition:
        raise HTTPException(status_code=404, detail="Condition not found")
    return condition


def _get_trip(db: Session, trip_id: int) -> Trip:
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return trip


def _check_applies_to(value: Optional[str]):
    if value is not None and value not in APPLIES_TO:
        raise HTTPException(status_code=400, detail=f"Invalid applies_to. Must be one of: {APPLIES_TO}")


def _trip_condition_response(tc: TripCondition) -> TripConditionResponse:
    return TripConditionResponse(
        id=tc.id,
        trip_id=tc.trip_id,
        condition_id=tc.condition_id,
        condition_name=tc.condition.name if tc.condition else "",
        selected_option_id=tc.selected_option_id,
        is_active=bool(tc.is_active),
        options=[OptionResponse.model_validate(o) for o in tc.options],
    )


# Tenant conditions

@router.get("/conditions", response_model=list[ConditionResponse])
async def list_conditions(db: Session = Depends(get_db)):
    return db.query(Condition).order_by(Condition.name).all()


@router.post("/conditions", response_model=ConditionResponse, status_code=201)
async def create_condition(data: ConditionCreate, db: Session = Depends(get_db)):
    _check_applies_to(data.applies_to)
    condition = Condition(name=data.name, applies_to=data.applies_to)
    for position, option in enumerate(data.options):
        condition.options.append(ConditionOption(
            label=option.label,
            sort_order=option.sort_order if option.sort_order is not None else position,
        ))
    db.add(condition)
    db.commit()
    db.refresh(condition)
    logger.info(f"Created condition {condition.id} '{condition.name}' with {len(condition.options)} options")
    return condition


@router.patch("/conditions/{condition_id}", response_model=ConditionResponse)
async def update_condition(condition_id: int, data: ConditionUpdate, db: Session = Depends(get_db)):
    condition = _get_condition(db, condition_id)
    _check_applies_to(data.applies_to)
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(condition, key, value)
    db.commit()
    db.refresh(condition)
    return condition


@router.delete("/conditions/{condition_id}")
async def delete_condition(condition_id: int, db: Session = Depends(get_db)):
    db.delete(_get_condition(db, condition_id))
    db.commit()
    return {"message": "Condition deleted"}


@router.post("/conditions/{condition_id}/options", response_model=OptionResponse, status_code=201)
async def add_option(condition_id: int, data: OptionCreate, db: Session = Depends(get_db)):
    condition = _get_condition(db, condition_id)
    option = ConditionOption(
        condition_id=condition.id,
        label=data.label,
        sort_order=data.sort_order if data.sort_order is not None else len(condition.options),
    )
    db.add(option)
    db.commit()
    db.refresh(option)
    return option


@router.delete("/conditions/{condition_id}/options/{option_id}")
async def delete_option(condition_id: int, option_id: int, db: Session = Depends(get_db)):
    option = db.query(ConditionOption).filter(
        ConditionOption.id == option_id,
        ConditionOption.condition_id == condition_id,
    ).first()
    if not option:
        raise HTTPException(status_code=404, detail="Option not found")
    db.delete(option)
    db.commit()
    return {"message": "Option deleted"}


# Trip conditions

@router.get("/trips/{trip_id}/conditions", response_model=list[TripConditionResponse])
async def list_trip_conditions(trip_id: int, db: Session = Depends(get_db)):
    trip = _get_trip(db, trip_id)
    return [_trip_condition_response(tc) for tc in trip.trip_conditions]


@router.put("/trips/{trip_id}/conditions/{condition_id}", response_model=TripConditionResponse)
async def set_trip_condition(
    trip_id: int,
    condition_id: int,
    data: TripConditionUpsert,
    db: Session = Depends(get_db),
):
    """Activate a condition on a trip, or change its selection / toggle."""
    _get_trip(db, trip_id)
    condition = _get_condition(db, condition_id)
    if data.selected_option_id is not None and data.selected_option_id not in {o.id for o in condition.options}:
        raise HTTPException(status_code=400, detail="Option does not belong to this condition")

    tc = db.query(TripCondition).filter(
        TripCondition.trip_id == trip_id,
        TripCondition.condition_id == condition_id,
    ).first()
    if tc is None:
        tc = TripCondition(trip_id=trip_id, condition_id=condition_id)
        db.add(tc)

    tc.selected_option_id = data.selected_option_id
    tc.is_active = data.is_active
    db.commit()
    db.refresh(tc)
    return _trip_condition_response(tc)


@router.delete("/trips/{trip_id}/conditions/{condition_id}")
async def remove_trip_condition(trip_id: int, condition_id: int, db: Session = Depends(get_db)):
    tc = db.query(TripCondition).filter(
        TripCondition.trip_id == trip_id,
        TripCondition.condition_id == condition_id,
    ).first()
    if not tc:
        raise HTTPException(status_code=404, detail="Condition not active on this trip")
    db.delete(tc)
    db.commit()
    return {"message": "Condition removed from trip"}


@router.get("/trips/{trip_id}/conditions/{condition_id}/variants")
async def check_variants(trip_id: int, condition_id: int, db: Session = Depends(get_db)):
    """List the blocks of a variant group and flag gaps or duplicated options."""
    trip = _get_trip(db, trip_id)
    variants = (
        db.query(Formula)
        .filter(Formula.trip_id == trip.id, Formula.condition_id == condition_id)
        .order_by(Formula.trip_day_id, Formula.sort_order)
        .all()
    )
    trip_conditions = list(trip.trip_conditions)
    report = check_variant_group(variants, condition_id, trip_conditions)

    return {
        "condition_id": condition_id,
        "active_variant_id": report.active_variant_id,
        "unassigned_variant_ids": report.unassigned_variant_ids,
        "duplicate_option_ids": report.duplicate_option_ids,
        "is_consistent": report.is_consistent,
        "variants": [
            {
                "formula_id": v.id,
                "name": v.name,
                "day_id": v.trip_day_id,
                "option_label": variant_option_label(v, trip_conditions, condition_id),
            }
            for v in variants
        ],
    }
