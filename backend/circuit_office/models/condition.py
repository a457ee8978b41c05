from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from circuit_office.database import Base


class Condition(Base):
    """A tenant-wide choice axis, e.g. "Comfort tier" or "Guide language"."""
    __tablename__ = "conditions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # accommodation, activity, transport or all
    applies_to = Column(String(20), default="all")

    created_at = Column(DateTime, server_default=func.now())

    options = relationship(
        "ConditionOption",
        back_populates="condition",
        cascade="all, delete-orphan",
        order_by="ConditionOption.sort_order",
    )


class ConditionOption(Base):
    __tablename__ = "condition_options"

    id = Column(Integer, primary_key=True, index=True)
    condition_id = Column(
        Integer,
        ForeignKey("conditions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    label = Column(String(100), nullable=False)
    sort_order = Column(Integer, default=0)

    condition = relationship("Condition", back_populates="options")


class TripCondition(Base):
    """A condition activated on a trip, with the option currently selected."""
    __tablename__ = "trip_conditions"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(
        Integer,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    condition_id = Column(
        Integer,
        ForeignKey("conditions.id", ondelete="CASCADE"),
        nullable=False
    )
    selected_option_id = Column(
        Integer,
        ForeignKey("condition_options.id", ondelete="SET NULL"),
        nullable=True
    )
    is_active = Column(Boolean, default=True)

    trip = relationship("Trip", back_populates="trip_conditions")
    condition = relationship("Condition")
    selected_option = relationship("ConditionOption")

    __table_args__ = (
        UniqueConstraint('trip_id', 'condition_id', name='uix_trip_condition'),
    )

    @property
    def options(self) -> list:
        return list(self.condition.options) if self.condition else []
