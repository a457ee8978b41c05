from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from circuit_office.database import Base


class BlockType(str, Enum):
    TEXT = "text"
    ACTIVITY = "activity"
    TRANSPORT = "transport"
    ACCOMMODATION = "accommodation"
    ROADBOOK = "roadbook"
    SERVICE = "service"


class Formula(Base):
    """
    One scheduling block of a trip.

    Blocks attached to a day form the programme. Blocks with no day are
    transversal services (guide for the whole trip, insurance, ...).
    Their description_html carries either free text or the typed metadata
    handled by circuit_office.services.block_meta.
    """
    __tablename__ = "formulas"

    id = Column(Integer, primary_key=True, index=True)

    trip_id = Column(
        Integer,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    trip_day_id = Column(
        Integer,
        ForeignKey("trip_days.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    name = Column(String(200), nullable=False)
    block_type = Column(String(20), nullable=False, default=BlockType.TEXT.value)
    description_html = Column(Text, nullable=True)

    # Variant axis (e.g. comfort tier) this block belongs to
    condition_id = Column(Integer, ForeignKey("conditions.id", ondelete="SET NULL"), nullable=True)

    sort_order = Column(Integer, default=0)
    service_day_start = Column(Integer, nullable=True)
    service_day_end = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    trip = relationship("Trip", back_populates="formulas")
    day = relationship("TripDay", back_populates="formulas")
    items = relationship(
        "Item",
        back_populates="formula",
        cascade="all, delete-orphan",
        order_by="Item.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Formula {self.id}: {self.block_type} '{self.name}'>"
