from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from circuit_office.api import health, trips, structure, conditions, cotations, invoices
from circuit_office.config import get_settings
from circuit_office.database import engine, Base
from circuit_office import models  # noqa: F401  registers the tables on Base

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Circuit Office ({settings.env})")

    if settings.database_url.startswith("sqlite"):
        logger.info("SQLite detected - creating tables if needed")
        Base.metadata.create_all(bind=engine)

    yield

    logger.info("Shutting down Circuit Office")


app = FastAPI(
    title="Circuit Office",
    description="Back-office for multi-day circuit trips: programme editing, quotation and invoicing",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(trips.router, prefix="/trips", tags=["trips"])
app.include_router(structure.router, tags=["structure"])
app.include_router(conditions.router, tags=["conditions"])
app.include_router(cotations.router, prefix="/cotations", tags=["cotations"])
app.include_router(invoices.router, prefix="/invoices", tags=["invoices"])


@app.get("/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"status": "ok"}
