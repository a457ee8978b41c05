from pydantic import BaseModel
from datetime import date, datetime
from typing import Optional


class ItemResponse(BaseModel):
    id: int
    formula_id: int
    name: str
    cost_nature_code: Optional[str] = None
    currency: Optional[str] = None
    unit_cost: Optional[float] = 0.0
    quantity: Optional[float] = 1.0
    ratio_rule: Optional[str] = None
    ratio_type: Optional[str] = "set"
    ratio_per: Optional[int] = 1
    ratio_categories: Optional[str] = None
    payment_flow: Optional[str] = None
    price_includes_vat: Optional[bool] = False
    condition_option_id: Optional[int] = None
    sort_order: Optional[int] = 0
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class FormulaResponse(BaseModel):
    id: int
    trip_id: int
    trip_day_id: Optional[int] = None
    name: str
    block_type: str
    description_html: Optional[str] = None
    condition_id: Optional[int] = None
    sort_order: Optional[int] = 0
    service_day_start: Optional[int] = None
    service_day_end: Optional[int] = None
    items: list[ItemResponse] = []

    class Config:
        from_attributes = True


class TripDayResponse(BaseModel):
    id: int
    trip_id: int
    day_number: int
    day_number_end: Optional[int] = None
    title: Optional[str] = None
    location: Optional[str] = None
    breakfast_included: Optional[bool] = False
    lunch_included: Optional[bool] = False
    dinner_included: Optional[bool] = False
    sort_order: Optional[int] = 0
    formulas: list[FormulaResponse] = []

    class Config:
        from_attributes = True


class TripSummary(BaseModel):
    id: int
    name: str
    reference: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    language: Optional[str] = None
    source_trip_id: Optional[int] = None
    destination_country: Optional[str] = None
    start_date: Optional[date] = None
    duration_days: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TripResponse(TripSummary):
    default_currency: Optional[str] = "EUR"
    margin_pct: Optional[float] = None
    margin_type: Optional[str] = None
    vat_pct: Optional[float] = None
    vat_calculation_mode: Optional[str] = None
    primary_commission_pct: Optional[float] = None
    primary_commission_label: Optional[str] = None
    secondary_commission_pct: Optional[float] = None
    secondary_commission_label: Optional[str] = None
    currency_rates_json: Optional[dict] = None
    inclusions: Optional[list] = None
    exclusions: Optional[list] = None
    notes: Optional[str] = None
    days: list[TripDayResponse] = []
    transversal_formulas: list[FormulaResponse] = []
