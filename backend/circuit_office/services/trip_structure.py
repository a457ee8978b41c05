import logging
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from circuit_office.models.trip import Trip, TripDay
from circuit_office.models.formula import Formula, BlockType
from circuit_office.models.item import Item, RatioRule
from circuit_office.services.ratio import map_ratio_rule

logger = logging.getLogger(__name__)

BLOCK_FIELDS = (
    "name", "block_type", "description_html", "condition_id",
    "sort_order", "service_day_start", "service_day_end",
)
ITEM_FIELDS = (
    "name", "cost_nature_code", "currency", "unit_cost", "quantity",
    "ratio_rule", "ratio_type", "ratio_per", "ratio_categories", "payment_flow",
    "price_includes_vat", "condition_option_id", "sort_order", "notes",
)
DAY_FIELDS = (
    "title", "location", "day_number_end",
    "breakfast_included", "lunch_included", "dinner_included",
)


class StructureError(Exception):
    """An edit that would leave the programme inconsistent."""


class StructureNotFound(StructureError):
    pass


class TripStructureService:
    """
    Mutations on a trip's programme: days, blocks and their items.

    Implements the StructureMutations protocol used by the drag & drop
    dispatcher. Every public mutation commits.
    """

    def __init__(self, db: Session):
        self.db = db

    # -- lookups ---------------------------------------------------------

    def get_trip(self, trip_id: int) -> Trip:
        trip = self.db.query(Trip).filter(Trip.id == trip_id).first()
        if not trip:
            raise StructureNotFound(f"Trip {trip_id} not found")
        return trip

    def get_day(self, day_id: int) -> TripDay:
        day = self.db.query(TripDay).filter(TripDay.id == day_id).first()
        if not day:
            raise StructureNotFound(f"Day {day_id} not found")
        return day

    def get_block(self, formula_id: int) -> Formula:
        block = self.db.query(Formula).filter(Formula.id == formula_id).first()
        if not block:
            raise StructureNotFound(f"Block {formula_id} not found")
        return block

    def get_item(self, item_id: int) -> Item:
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise StructureNotFound(f"Item {item_id} not found")
        return item

    def day_blocks(self, day_id: int) -> list[Formula]:
        return (
            self.db.query(Formula)
            .filter(Formula.trip_day_id == day_id)
            .order_by(Formula.sort_order, Formula.id)
            .all()
        )

    def trip_days(self, trip_id: int) -> list[TripDay]:
        return (
            self.db.query(TripDay)
            .filter(TripDay.trip_id == trip_id)
            .order_by(TripDay.sort_order, TripDay.day_number, TripDay.id)
            .all()
        )

    def transversal_blocks(self, trip_id: int) -> list[Formula]:
        return (
            self.db.query(Formula)
            .filter(Formula.trip_id == trip_id, Formula.trip_day_id.is_(None))
            .order_by(Formula.sort_order, Formula.id)
            .all()
        )

    def day_blocks_map(self, trip_id: int) -> dict[int, list[int]]:
        return {
            day.id: [b.id for b in self.day_blocks(day.id)]
            for day in self.trip_days(trip_id)
        }

    def _next_sort_order(self, day_id: int) -> int:
        current = self.db.query(func.max(Formula.sort_order)).filter(
            Formula.trip_day_id == day_id
        ).scalar()
        return 0 if current is None else current + 1

    # -- days ------------------------------------------------------------

    def create_day(self, trip_id: int, **fields) -> TripDay:
        trip = self.get_trip(trip_id)
        days = self.trip_days(trip.id)
        last = days[-1] if days else None
        next_number = ((last.day_number_end or last.day_number) + 1) if last else 1

        day = TripDay(
            trip_id=trip.id,
            day_number=next_number,
            sort_order=len(days),
            **{k: v for k, v in fields.items() if k in DAY_FIELDS},
        )
        self.db.add(day)
        if next_number > (trip.duration_days or 0):
            trip.duration_days = next_number
        self.db.commit()
        self.db.refresh(day)
        return day

    def update_day(self, day_id: int, **fields) -> TripDay:
        day = self.get_day(day_id)
        end = fields.get("day_number_end", day.day_number_end)
        if end is not None and end < day.day_number:
            raise StructureError("day_number_end must not precede day_number")
        for key, value in fields.items():
            if key in DAY_FIELDS:
                setattr(day, key, value)
        self.db.commit()
        self.db.refresh(day)
        return day

    def delete_day(self, day_id: int) -> None:
        day = self.get_day(day_id)
        trip_id = day.trip_id
        self.db.delete(day)
        self.db.flush()
        self._renumber_days(self.trip_days(trip_id))
        self.db.commit()

    def reorder_days(self, day_ids: list[int]) -> list[TripDay]:
        if not day_ids:
            return []
        first = self.get_day(day_ids[0])
        days = self.trip_days(first.trip_id)
        by_id = {d.id: d for d in days}

        if len(day_ids) != len(set(day_ids)) or set(day_ids) != set(by_id):
            raise StructureError(
                f"Day order must list every day of trip {first.trip_id} exactly once"
            )

        ordered = [by_id[i] for i in day_ids]
        self._renumber_days(ordered)
        self.db.commit()
        logger.info(f"Reordered {len(ordered)} days of trip {first.trip_id}")
        return ordered

    def _renumber_days(self, days: list[TripDay]) -> None:
        number = 1
        for position, day in enumerate(days):
            span = (day.day_number_end - day.day_number) if day.day_number_end else None
            day.day_number = number
            day.day_number_end = number + span if span else None
            day.sort_order = position
            number = (day.day_number_end or day.day_number) + 1

    # -- blocks ----------------------------------------------------------

    def create_block(
        self,
        day_id: int,
        name: str,
        block_type: str = BlockType.TEXT.value,
        **fields,
    ) -> Formula:
        day = self.get_day(day_id)
        sort_order = fields.pop("sort_order", None)
        block = Formula(
            trip_id=day.trip_id,
            trip_day_id=day.id,
            name=name,
            block_type=BlockType(block_type).value,
            sort_order=self._next_sort_order(day.id) if sort_order is None else sort_order,
            **{k: v for k, v in fields.items() if k in BLOCK_FIELDS},
        )
        self.db.add(block)
        self.db.commit()
        self.db.refresh(block)
        return block

    def create_transversal_block(self, trip_id: int, name: str, **fields) -> Formula:
        trip = self.get_trip(trip_id)
        block = Formula(
            trip_id=trip.id,
            trip_day_id=None,
            name=name,
            block_type=BlockType.SERVICE.value,
            **{k: v for k, v in fields.items() if k in BLOCK_FIELDS and k != "block_type"},
        )
        self.db.add(block)
        self.db.commit()
        self.db.refresh(block)
        return block

    def update_block(self, formula_id: int, **fields) -> Formula:
        block = self.get_block(formula_id)
        for key, value in fields.items():
            if key not in BLOCK_FIELDS:
                continue
            if key == "block_type":
                value = BlockType(value).value
            setattr(block, key, value)
        self.db.commit()
        self.db.refresh(block)
        return block

    def delete_block(self, formula_id: int) -> None:
        block = self.get_block(formula_id)
        self.db.delete(block)
        self.db.commit()

    def reorder_blocks(self, day_id: int, block_ids: list[int]) -> list[Formula]:
        blocks = self.day_blocks(self.get_day(day_id).id)
        by_id = {b.id: b for b in blocks}

        unknown = [i for i in block_ids if i not in by_id]
        if unknown:
            raise StructureError(f"Blocks {unknown} do not belong to day {day_id}")

        # Blocks missing from the list keep their relative order at the end
        ordered = [by_id[i] for i in dict.fromkeys(block_ids)]
        ordered += [b for b in blocks if b.id not in set(block_ids)]
        for position, block in enumerate(ordered):
            block.sort_order = position
        self.db.commit()
        return ordered

    def move_block(self, formula_id: int, target_day_id: int, sort_order: int = 0) -> Formula:
        block = self.get_block(formula_id)
        target = self.get_day(target_day_id)

        block.trip_day_id = target.id
        block.trip_id = target.trip_id
        block.sort_order = sort_order
        self.db.commit()
        self.db.refresh(block)
        logger.info(f"Moved block {formula_id} to day {target_day_id}")
        return block

    def duplicate_block(
        self,
        formula_id: int,
        target_day_id: int,
        sort_order: Optional[int] = None,
    ) -> Formula:
        """Copy a block and its items into a day, possibly of another trip."""
        source = self.get_block(formula_id)
        target = self.get_day(target_day_id)
        if sort_order is None:
            sort_order = self._next_sort_order(target.id)

        copy = self._copy_block(source, target, sort_order)
        self.db.commit()
        self.db.refresh(copy)
        return copy

    def copy_day_blocks(self, source_day_id: int, target_day_id: int) -> list[Formula]:
        """Append copies of every block of the source day to the target day."""
        source = self.get_day(source_day_id)
        target = self.get_day(target_day_id)

        start = self._next_sort_order(target.id)
        copies = [
            self._copy_block(block, target, start + offset)
            for offset, block in enumerate(self.day_blocks(source.id))
        ]
        self.db.commit()
        for copy in copies:
            self.db.refresh(copy)
        logger.info(f"Copied {len(copies)} blocks from day {source_day_id} to day {target_day_id}")
        return copies

    def _copy_block(self, source: Formula, target: TripDay, sort_order: int) -> Formula:
        copy = Formula(
            trip_id=target.trip_id,
            trip_day_id=target.id,
            name=source.name,
            block_type=source.block_type,
            description_html=source.description_html,
            condition_id=source.condition_id,
            sort_order=sort_order,
            service_day_start=source.service_day_start,
            service_day_end=source.service_day_end,
        )
        copy.items = [self._copy_item(item) for item in source.items]
        self.db.add(copy)
        return copy

    @staticmethod
    def _copy_item(source: Item) -> Item:
        return Item(**{field: getattr(source, field) for field in ITEM_FIELDS})

    # -- items -----------------------------------------------------------

    @staticmethod
    def _normalize_ratio(fields: dict) -> dict:
        if fields.get("ratio_rule") is None:
            return fields
        mapping = map_ratio_rule(
            RatioRule(fields["ratio_rule"]).value,
            fields.get("ratio_per"),
            fields.get("ratio_categories"),
        )
        fields["ratio_type"] = mapping.ratio_type
        fields["ratio_per"] = mapping.ratio_per
        fields["ratio_categories"] = mapping.ratio_categories
        return fields

    def create_item(self, formula_id: int, name: str, **fields) -> Item:
        block = self.get_block(formula_id)
        fields = self._normalize_ratio(fields)
        if "sort_order" not in fields:
            fields["sort_order"] = len(block.items)
        item = Item(
            formula_id=block.id,
            name=name,
            **{k: v for k, v in fields.items() if k in ITEM_FIELDS and k != "name"},
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def update_item(self, item_id: int, **fields) -> Item:
        item = self.get_item(item_id)
        if fields.get("ratio_rule") is not None:
            fields.setdefault("ratio_per", item.ratio_per)
            fields.setdefault("ratio_categories", item.ratio_categories)
        for key, value in self._normalize_ratio(fields).items():
            if key in ITEM_FIELDS:
                setattr(item, key, value)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item_id: int) -> None:
        item = self.get_item(item_id)
        self.db.delete(item)
        self.db.commit()
