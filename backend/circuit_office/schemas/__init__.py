from circuit_office.schemas.trip import TripResponse, TripSummary, TripDayResponse, FormulaResponse, ItemResponse
from circuit_office.schemas.invoice import InvoiceResponse, InvoiceLineResponse, InvoiceCreate, InvoiceUpdate

__all__ = [
    "TripResponse", "TripSummary", "TripDayResponse", "FormulaResponse", "ItemResponse",
    "InvoiceResponse", "InvoiceLineResponse", "InvoiceCreate", "InvoiceUpdate",
]
