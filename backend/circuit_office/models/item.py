from enum import Enum
from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship
from circuit_office.database import Base


class RatioRule(str, Enum):
    PER_PERSON = "per_person"
    PER_ROOM = "per_room"
    PER_VEHICLE = "per_vehicle"
    PER_GROUP = "per_group"


class PaymentFlow(str, Enum):
    BOOKING = "booking"
    PURCHASE_ORDER = "purchase_order"
    PAYROLL = "payroll"
    ADVANCE = "advance"


COST_NATURE_NAMES = {
    "HTL": "Hébergement",
    "GDE": "Guide",
    "TRS": "Transport",
    "ACT": "Activité",
    "RES": "Restauration",
    "MIS": "Divers",
}


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)

    formula_id = Column(
        Integer,
        ForeignKey("formulas.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(200), nullable=False)
    cost_nature_code = Column(String(3), default="MIS")

    currency = Column(String(3), nullable=True)
    unit_cost = Column(Float, default=0.0)
    quantity = Column(Float, default=1.0)

    ratio_rule = Column(String(20), default=RatioRule.PER_GROUP.value)
    # "ratio" scales with travellers, rooms or vehicles; "set" is a flat count
    ratio_type = Column(String(10), default="set")
    # "1 per N": one unit for every ratio_per travellers
    ratio_per = Column(Integer, default=1)
    ratio_categories = Column(String(100), nullable=True)

    payment_flow = Column(String(20), nullable=True)
    price_includes_vat = Column(Boolean, default=False)

    condition_option_id = Column(
        Integer,
        ForeignKey("condition_options.id", ondelete="SET NULL"),
        nullable=True
    )

    sort_order = Column(Integer, default=0)
    notes = Column(Text, nullable=True)

    formula = relationship("Formula", back_populates="items")

    def __repr__(self) -> str:
        return f"<Item {self.id}: {self.name} {self.unit_cost} x{self.quantity} {self.ratio_rule}>"
