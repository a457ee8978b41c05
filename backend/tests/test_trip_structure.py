"""Tests for TripStructureService (days, blocks, items)."""
import pytest

from circuit_office.models import Trip, Formula, Item
from circuit_office.services.trip_structure import (
    TripStructureService,
    StructureError,
    StructureNotFound,
)
from circuit_office.services.dnd import DragDropDispatcher, DropEvent


def _days(service, trip):
    return service.trip_days(trip.id)


class TestDays:
    def test_create_day_appends_and_extends_duration(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        day = service.create_day(sample_trip.id, title="Golden Triangle")
        assert day.day_number == 4
        assert day.sort_order == 3
        assert service.get_trip(sample_trip.id).duration_days == 4

    def test_create_day_after_multi_day_range(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        last = _days(service, sample_trip)[-1]
        service.update_day(last.id, day_number_end=5)
        day = service.create_day(sample_trip.id)
        assert day.day_number == 6

    def test_range_end_before_start_is_rejected(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        day = _days(service, sample_trip)[1]
        with pytest.raises(StructureError):
            service.update_day(day.id, day_number_end=1)

    def test_delete_day_renumbers(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        first = _days(service, sample_trip)[0]
        service.delete_day(first.id)

        days = _days(service, sample_trip)
        assert [d.day_number for d in days] == [1, 2]
        assert [d.title for d in days] == ["Doi Suthep", "Chiang Rai"]
        # Its blocks and items go with it
        assert db_session.query(Formula).filter(Formula.name == "Arrival").count() == 0
        assert db_session.query(Item).filter(Item.name == "Hotel").count() == 0

    def test_reorder_days(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, d3 = _days(service, sample_trip)
        service.reorder_days([d3.id, d1.id, d2.id])

        days = _days(service, sample_trip)
        assert [d.id for d in days] == [d3.id, d1.id, d2.id]
        assert [d.day_number for d in days] == [1, 2, 3]
        assert [d.sort_order for d in days] == [0, 1, 2]

    def test_reorder_days_keeps_range_spans(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, d3 = _days(service, sample_trip)
        service.update_day(d2.id, day_number_end=4)  # 3-day trek
        service.reorder_days([d2.id, d1.id, d3.id])

        d2, d1, d3 = _days(service, sample_trip)
        assert (d2.day_number, d2.day_number_end) == (1, 3)
        assert d1.day_number == 4
        assert d3.day_number == 5

    def test_reorder_days_requires_every_day(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, _ = _days(service, sample_trip)
        with pytest.raises(StructureError):
            service.reorder_days([d2.id, d1.id])
        with pytest.raises(StructureError):
            service.reorder_days([d1.id, d1.id, d2.id])


class TestBlocks:
    def test_create_block_appends(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        day = _days(service, sample_trip)[0]
        block = service.create_block(day.id, "Night market", block_type="activity")
        assert block.sort_order == 1
        assert block.trip_id == sample_trip.id

    def test_create_block_rejects_unknown_type(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        day = _days(service, sample_trip)[0]
        with pytest.raises(ValueError):
            service.create_block(day.id, "Teleport", block_type="teleport")

    def test_reorder_blocks(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        day = _days(service, sample_trip)[0]
        arrival = service.day_blocks(day.id)[0]
        extra = service.create_block(day.id, "Dinner")

        service.reorder_blocks(day.id, [extra.id, arrival.id])
        assert [b.id for b in service.day_blocks(day.id)] == [extra.id, arrival.id]

    def test_reorder_blocks_keeps_unlisted_at_end(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        day = _days(service, sample_trip)[0]
        arrival = service.day_blocks(day.id)[0]
        b2 = service.create_block(day.id, "B2")
        b3 = service.create_block(day.id, "B3")

        service.reorder_blocks(day.id, [b3.id])
        assert [b.id for b in service.day_blocks(day.id)] == [b3.id, arrival.id, b2.id]

    def test_reorder_blocks_rejects_foreign_ids(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, _ = _days(service, sample_trip)
        foreign = service.day_blocks(d2.id)[0]
        with pytest.raises(StructureError):
            service.reorder_blocks(d1.id, [foreign.id])

    def test_move_block(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, _, d3 = _days(service, sample_trip)
        arrival = service.day_blocks(d1.id)[0]

        moved = service.move_block(arrival.id, d3.id)
        assert moved.trip_day_id == d3.id
        assert moved.sort_order == 0
        assert service.day_blocks(d1.id) == []
        assert len(moved.items) == 2

    def test_duplicate_block_copies_items(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, _ = _days(service, sample_trip)
        visit = service.day_blocks(d2.id)[0]

        copy = service.duplicate_block(visit.id, d1.id)
        assert copy.id != visit.id
        assert copy.sort_order == 1
        assert [i.name for i in copy.items] == ["Ticket", "Guide"]
        # Source untouched
        assert len(service.get_block(visit.id).items) == 2
        assert service.get_block(visit.id).trip_day_id == d2.id

    def test_duplicate_block_across_trips(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        other = Trip(name="Laos extension")
        db_session.add(other)
        db_session.commit()
        target = service.create_day(other.id)
        visit = service.day_blocks(_days(service, sample_trip)[1].id)[0]

        copy = service.duplicate_block(visit.id, target.id)
        assert copy.trip_id == other.id
        assert copy.trip_day_id == target.id

    def test_copy_day_blocks_appends(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, _ = _days(service, sample_trip)

        copies = service.copy_day_blocks(d2.id, d1.id)
        blocks = service.day_blocks(d1.id)
        assert [b.name for b in blocks] == ["Arrival", "Temple visit"]
        assert copies[0].sort_order == 1
        assert len(service.day_blocks(d2.id)) == 1

    def test_transversal_blocks(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        service.create_transversal_block(sample_trip.id, "Travel guide book")
        names = [b.name for b in service.transversal_blocks(sample_trip.id)]
        assert names == ["Insurance", "Travel guide book"]
        assert all(b.block_type == "service" for b in service.transversal_blocks(sample_trip.id))

    def test_missing_block(self, db_session):
        with pytest.raises(StructureNotFound):
            TripStructureService(db_session).get_block(404)


class TestItems:
    def test_create_item_normalizes_ratio(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        block = service.day_blocks(_days(service, sample_trip)[1].id)[0]

        item = service.create_item(block.id, "Driver", unit_cost=20.0, ratio_rule="per_vehicle", ratio_per=4)
        assert item.ratio_per == 4
        assert item.ratio_categories == "vehicle"
        assert item.ratio_type == "ratio"
        assert item.sort_order == 2

        group = service.create_item(block.id, "Permit", ratio_rule="per_group", ratio_per=7)
        assert group.ratio_per == 1
        assert group.ratio_type == "set"

    def test_update_and_delete_item(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        block = service.day_blocks(_days(service, sample_trip)[1].id)[0]
        ticket = block.items[0]

        updated = service.update_item(ticket.id, unit_cost=12.5)
        assert updated.unit_cost == 12.5

        service.delete_item(ticket.id)
        assert [i.name for i in service.get_block(block.id).items] == ["Guide"]


class TestDropAgainstDatabase:
    def test_block_dropped_on_another_day(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1, d2, _ = _days(service, sample_trip)
        arrival = service.day_blocks(d1.id)[0]
        event = DropEvent.model_validate({
            "active": {"type": "block", "block_id": arrival.id, "day_id": d1.id},
            "over": {"type": "day", "day_id": d2.id},
        })

        outcome = DragDropDispatcher(service).handle_drop(
            event, service.day_blocks_map(sample_trip.id), [d.id for d in _days(service, sample_trip)]
        )
        assert outcome.ok
        assert service.get_block(arrival.id).trip_day_id == d2.id

    def test_failed_drop_is_reported(self, db_session, sample_trip):
        service = TripStructureService(db_session)
        d1 = _days(service, sample_trip)[0]
        event = DropEvent.model_validate({
            "active": {"type": "source-block", "block_id": 9999, "source_day_id": 1},
            "over": {"type": "day", "day_id": d1.id},
        })

        outcome = DragDropDispatcher(service).handle_drop(event, {}, [])
        assert not outcome.ok
        assert "9999" in outcome.error
