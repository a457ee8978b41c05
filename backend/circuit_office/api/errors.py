from contextlib import contextmanager
import logging

from fastapi import HTTPException

from circuit_office.services.trip_structure import StructureError, StructureNotFound
from circuit_office.services.invoicing import InvoiceStateError, InvoiceNotFound
from circuit_office.services.cotations import CotationNotFound
from circuit_office.services.quotation import MissingExchangeRateError

logger = logging.getLogger(__name__)


@contextmanager
def service_errors():
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except (StructureNotFound, InvoiceNotFound, CotationNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvoiceStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MissingExchangeRateError as e:
        raise HTTPException(status_code=422, detail=e.message)
    except (StructureError, ValueError) as e:
        logger.warning(f"Rejected request: {e}")
        raise HTTPException(status_code=400, detail=str(e))
