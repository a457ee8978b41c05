from enum import Enum
from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, Float, JSON, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from circuit_office.database import Base


class TripType(str, Enum):
    ONLINE = "online"
    GIR = "gir"
    TEMPLATE = "template"
    CUSTOM = "custom"


class TripStatus(str, Enum):
    DRAFT = "draft"
    QUOTED = "quoted"
    SENT = "sent"
    CONFIRMED = "confirmed"
    OPERATING = "operating"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MarginType(str, Enum):
    MARGIN = "margin"
    MARKUP = "markup"


class VatCalculationMode(str, Enum):
    ON_MARGIN = "on_margin"
    ON_SELLING_PRICE = "on_selling_price"


class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(200), nullable=False)
    reference = Column(String(50), nullable=True)
    type = Column(String(20), default=TripType.CUSTOM.value)
    status = Column(String(20), default=TripStatus.DRAFT.value)

    destination_country = Column(String(2), nullable=True)
    start_date = Column(Date, nullable=True)
    duration_days = Column(Integer, default=1)

    default_currency = Column(String(3), default="EUR")
    margin_pct = Column(Float, default=30.0)
    margin_type = Column(String(10), default=MarginType.MARGIN.value)
    vat_pct = Column(Float, default=0.0)
    vat_calculation_mode = Column(String(20), default=VatCalculationMode.ON_MARGIN.value)

    primary_commission_pct = Column(Float, default=0.0)
    primary_commission_label = Column(String(100), nullable=True)
    secondary_commission_pct = Column(Float, nullable=True)
    secondary_commission_label = Column(String(100), nullable=True)

    # {"base_currency": "EUR", "rates": {"THB": {"rate": 0.026, "source": "manual"}}}
    currency_rates_json = Column(JSON, nullable=True)

    inclusions = Column(JSON, default=list)
    exclusions = Column(JSON, default=list)

    # Translation variants point back at the trip they were copied from
    language = Column(String(5), default="fr")
    source_trip_id = Column(Integer, ForeignKey("trips.id", ondelete="SET NULL"), nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    days = relationship(
        "TripDay",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="TripDay.sort_order",
    )
    formulas = relationship(
        "Formula",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="Formula.sort_order",
    )
    trip_conditions = relationship(
        "TripCondition",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Trip {self.id}: {self.name} ({self.language})>"

    @property
    def transversal_formulas(self) -> list:
        """Trip-level services that are not attached to a specific day."""
        return [f for f in self.formulas if f.trip_day_id is None]


class TripDay(Base):
    __tablename__ = "trip_days"

    id = Column(Integer, primary_key=True, index=True)

    trip_id = Column(
        Integer,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    day_number = Column(Integer, nullable=False, default=1)
    # Set when the day spans several calendar days (e.g. a 3-night trek)
    day_number_end = Column(Integer, nullable=True)

    title = Column(String(200), nullable=True)
    location = Column(String(200), nullable=True)

    breakfast_included = Column(Boolean, default=False)
    lunch_included = Column(Boolean, default=False)
    dinner_included = Column(Boolean, default=False)

    sort_order = Column(Integer, default=0)

    trip = relationship("Trip", back_populates="days")
    formulas = relationship(
        "Formula",
        back_populates="day",
        cascade="all, delete-orphan",
        order_by="Formula.sort_order",
    )

    def __repr__(self) -> str:
        return f"<TripDay {self.id}: trip {self.trip_id} day {self.day_number}>"
