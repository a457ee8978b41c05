from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from circuit_office.database import Base


class TripCotation(Base):
    """
    A named pricing snapshot for a trip.

    pax_configs_json holds the traveller/room configurations to price,
    condition_selections_json maps condition_id -> option_id and overrides
    the trip's own selections, results_json stores the last calculation.
    """
    __tablename__ = "trip_cotations"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(
        Integer,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(100), nullable=False)
    mode = Column(String(10), default="range")  # range or custom
    min_pax = Column(Integer, default=2)
    max_pax = Column(Integer, default=10)
    margin_override_pct = Column(Float, nullable=True)

    pax_configs_json = Column(JSON, default=list)
    condition_selections_json = Column(JSON, default=dict)
    results_json = Column(JSON, nullable=True)

    status = Column(String(20), default="draft")
    calculated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    trip = relationship("Trip")
