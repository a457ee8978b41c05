"""
Drag & drop reconciliation for the circuit programme editor.

The editor attaches a payload to every draggable element and to every drop
zone. When a drag ends, resolve_drop() turns the (active, over) pair into
one of five operations:

- block on a block of the same day      -> reorder the day's blocks
- block on a block/day of another day   -> move the block to that day
- circuit day on another circuit day    -> reorder the trip's days
- source block (template, other circuit) on a day -> duplicate it there
- source day on a day                   -> copy all its blocks there

Source payloads only ever produce copies: the source trip is never mutated.
DragDropDispatcher then calls the matching mutation and logs failures
without rolling anything back.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Literal, Mapping, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class BlockDrag(BaseModel):
    """A block of the edited circuit (also used as a block drop target)."""
    type: Literal["block"] = "block"
    block_id: int
    day_id: int


class SourceBlockDrag(BaseModel):
    type: Literal["source-block"] = "source-block"
    block_id: int
    source_day_id: int


class CircuitDayDrag(BaseModel):
    """A day card of the edited circuit (also used as a day-sort target)."""
    type: Literal["circuit-day"] = "circuit-day"
    day_id: int
    trip_id: Optional[int] = None


class SourceDayDrag(BaseModel):
    type: Literal["source-day"] = "source-day"
    day_id: int
    source_trip_id: int


class DayDrop(BaseModel):
    type: Literal["day"] = "day"
    day_id: int
    day_number: Optional[int] = None


DragData = Annotated[
    Union[BlockDrag, SourceBlockDrag, CircuitDayDrag, SourceDayDrag],
    Field(discriminator="type"),
]
DropData = Annotated[
    Union[DayDrop, BlockDrag, CircuitDayDrag],
    Field(discriminator="type"),
]


class DropEvent(BaseModel):
    active: DragData
    over: Optional[DropData] = None
    # Sortable ids of the dragged element and of the element under the pointer
    active_id: Optional[str] = None
    over_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

class OperationKind(str, Enum):
    REORDER_BLOCKS = "reorder_blocks"
    MOVE_BLOCK = "move_block"
    REORDER_DAYS = "reorder_days"
    DUPLICATE_BLOCK = "duplicate_block"
    COPY_DAY_BLOCKS = "copy_day_blocks"


@dataclass(frozen=True)
class DropOperation:
    kind: OperationKind
    day_id: Optional[int] = None
    block_id: Optional[int] = None
    target_day_id: Optional[int] = None
    source_day_id: Optional[int] = None
    block_ids: tuple = ()
    day_ids: tuple = ()


@dataclass
class DropOutcome:
    operation: Optional[DropOperation]
    ok: bool = True
    error: Optional[str] = None
    result: object = field(default=None, repr=False)


class StructureMutations(Protocol):
    def reorder_blocks(self, day_id: int, block_ids: list[int]): ...

    def move_block(self, formula_id: int, target_day_id: int): ...

    def reorder_days(self, day_ids: list[int]): ...

    def duplicate_block(self, formula_id: int, target_day_id: int): ...

    def copy_day_blocks(self, source_day_id: int, target_day_id: int): ...


def array_move(items: Sequence, from_index: int, to_index: int) -> list:
    """Return a copy of items with the element at from_index moved to to_index."""
    result = list(items)
    if to_index < 0:
        to_index += len(result)
    result.insert(to_index, result.pop(from_index))
    return result


def _reorder(ids: Sequence[int], active_id: int, over_id: int) -> Optional[list[int]]:
    if active_id not in ids or over_id not in ids:
        return None
    return array_move(ids, list(ids).index(active_id), list(ids).index(over_id))


def foreign_references(
    event: DropEvent,
    day_blocks: Mapping[int, Sequence[int]],
    day_ids: Sequence[int],
) -> list[str]:
    """
    List the ids of the event that point outside the edited trip.

    Source payloads may come from anywhere; every other payload and every
    drop target must belong to the trip described by day_blocks/day_ids.
    """
    block_ids = {b for blocks in day_blocks.values() for b in blocks}
    days = set(day_ids)
    foreign = []
    for payload in (event.active, event.over):
        if isinstance(payload, BlockDrag):
            if payload.block_id not in block_ids:
                foreign.append(f"block {payload.block_id}")
            if payload.day_id not in days:
                foreign.append(f"day {payload.day_id}")
        elif isinstance(payload, (CircuitDayDrag, DayDrop)):
            if payload.day_id not in days:
                foreign.append(f"day {payload.day_id}")
    return foreign


def resolve_drop(
    event: DropEvent,
    day_blocks: Mapping[int, Sequence[int]],
    day_ids: Sequence[int],
) -> Optional[DropOperation]:
    """
    Decide what a finished drag means.

    day_blocks maps each day id to its ordered block ids, day_ids is the
    trip's ordered day ids. Returns None when the drop changes nothing.
    """
    active, over = event.active, event.over
    if over is None:
        return None
    if event.active_id is not None and event.active_id == event.over_id:
        return None

    if isinstance(active, BlockDrag):
        if isinstance(over, BlockDrag):
            if active.day_id == over.day_id:
                reordered = _reorder(day_blocks.get(active.day_id, []), active.block_id, over.block_id)
                if reordered is None:
                    return None
                return DropOperation(
                    kind=OperationKind.REORDER_BLOCKS,
                    day_id=active.day_id,
                    block_ids=tuple(reordered),
                )
            return DropOperation(
                kind=OperationKind.MOVE_BLOCK,
                block_id=active.block_id,
                target_day_id=over.day_id,
            )
        if isinstance(over, DayDrop):
            if active.day_id == over.day_id:
                return None
            return DropOperation(
                kind=OperationKind.MOVE_BLOCK,
                block_id=active.block_id,
                target_day_id=over.day_id,
            )
        return None

    if isinstance(active, CircuitDayDrag):
        if not isinstance(over, CircuitDayDrag) or active.day_id == over.day_id:
            return None
        reordered = _reorder(day_ids, active.day_id, over.day_id)
        if reordered is None:
            return None
        return DropOperation(kind=OperationKind.REORDER_DAYS, day_ids=tuple(reordered))

    if isinstance(active, SourceBlockDrag) and isinstance(over, DayDrop):
        return DropOperation(
            kind=OperationKind.DUPLICATE_BLOCK,
            block_id=active.block_id,
            target_day_id=over.day_id,
        )

    if isinstance(active, SourceDayDrag) and isinstance(over, DayDrop):
        return DropOperation(
            kind=OperationKind.COPY_DAY_BLOCKS,
            source_day_id=active.day_id,
            target_day_id=over.day_id,
        )

    return None


class DragDropDispatcher:

    def __init__(self, mutations: StructureMutations):
        self.mutations = mutations

    def dispatch(self, operation: DropOperation):
        m = self.mutations
        if operation.kind == OperationKind.REORDER_BLOCKS:
            return m.reorder_blocks(operation.day_id, list(operation.block_ids))
        if operation.kind == OperationKind.MOVE_BLOCK:
            return m.move_block(operation.block_id, operation.target_day_id)
        if operation.kind == OperationKind.REORDER_DAYS:
            return m.reorder_days(list(operation.day_ids))
        if operation.kind == OperationKind.DUPLICATE_BLOCK:
            return m.duplicate_block(operation.block_id, operation.target_day_id)
        if operation.kind == OperationKind.COPY_DAY_BLOCKS:
            return m.copy_day_blocks(operation.source_day_id, operation.target_day_id)
        raise ValueError(f"Unknown drop operation: {operation.kind}")

    def handle_drop(
        self,
        event: DropEvent,
        day_blocks: Mapping[int, Sequence[int]],
        day_ids: Sequence[int],
    ) -> DropOutcome:
        operation = resolve_drop(event, day_blocks, day_ids)
        if operation is None:
            return DropOutcome(operation=None)

        try:
            result = self.dispatch(operation)
        except Exception as e:
            logger.error(f"DnD operation {operation.kind.value} failed: {e}")
            return DropOutcome(operation=operation, ok=False, error=str(e))

        logger.info(f"DnD operation {operation.kind.value} applied")
        return DropOutcome(operation=operation, result=result)
