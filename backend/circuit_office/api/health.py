from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text

from circuit_office.config import get_settings
from circuit_office.database import get_db
from circuit_office.models import Trip, Invoice

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    counts = {}
    try:
        db.execute(text("SELECT 1"))
        counts = {
            "trips": db.query(Trip).count(),
            "invoices": db.query(Invoice).count(),
        }
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    return {
        "status": "ok" if db_status == "healthy" else "degraded",
        "env": get_settings().env,
        "database": db_status,
        "counts": counts,
    }
