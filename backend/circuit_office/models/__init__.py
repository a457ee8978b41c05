# SQLAlchemy models
from circuit_office.models.trip import Trip, TripDay, TripType, TripStatus, MarginType, VatCalculationMode
from circuit_office.models.formula import Formula, BlockType
from circuit_office.models.item import Item, RatioRule, PaymentFlow
from circuit_office.models.condition import Condition, ConditionOption, TripCondition
from circuit_office.models.cotation import TripCotation
from circuit_office.models.invoice import Invoice, InvoiceLine, InvoiceType, InvoiceStatus

__all__ = [
    # Trip structure
    "Trip",
    "TripDay",
    "Formula",
    "Item",
    # Variants
    "Condition",
    "ConditionOption",
    "TripCondition",
    # Pricing & billing
    "TripCotation",
    "Invoice",
    "InvoiceLine",
    # Enums
    "TripType",
    "TripStatus",
    "MarginType",
    "VatCalculationMode",
    "BlockType",
    "RatioRule",
    "PaymentFlow",
    "InvoiceType",
    "InvoiceStatus",
]
