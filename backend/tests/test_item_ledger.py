# Overview: Pytest coverage for item registration, status writes, bulk wash transitions and condition flags.

"""
Item Ledger Tests

Covers:
- Registration: tag validation, case-insensitive uniqueness, bulk report-don't-fail
- Status primitive: wash counting only on counted entry into at_laundry
- mark_clean / mark_processing skip semantics
- Condition flags and alerts
- Guarded deletion
"""

import pytest

from laundry.errors import ConflictError, NotFoundError, ValidationError
from laundry.models import Alert, AuditEntry, Item, PickupItem
from laundry.models.items import (
    ITEM_STATUS_AT_HOTEL,
    ITEM_STATUS_AT_LAUNDRY,
    ITEM_STATUS_PROCESSING,
    ITEM_STATUS_READY,
)
from laundry.services import delivery_service, item_service, pickup_service


class TestRegistration:

    def test_new_item_starts_at_hotel(self, db_session, hotel_a):
        item = item_service.register_item(hotel_a.id, 3, "  E2003412AA01 ", location="Floor 2")
        assert item.rfid_tag == "E2003412AA01"
        assert item.status == ITEM_STATUS_AT_HOTEL
        assert item.wash_count == 0
        assert item.location == "Floor 2"

    def test_duplicate_tag_conflicts_case_insensitively(self, db_session, hotel_a, hotel_b):
        item_service.register_item(hotel_a.id, 1, "abc-001")
        with pytest.raises(ConflictError):
            item_service.register_item(hotel_b.id, 1, "ABC-001")
        assert db_session.query(Item).count() == 1

    @pytest.mark.parametrize("tag", ["", "   ", "has space", "-leading-dash", None])
    def test_malformed_tag_rejected(self, db_session, hotel_a, tag):
        with pytest.raises(ValidationError):
            item_service.register_item(hotel_a.id, 1, tag)

    def test_item_type_must_be_integer(self, db_session, hotel_a):
        with pytest.raises(ValidationError):
            item_service.register_item(hotel_a.id, "towel", "TAG-1")

    def test_unknown_tenant(self, db_session):
        with pytest.raises(NotFoundError):
            item_service.register_item(404, 1, "TAG-1")

    def test_bulk_reports_per_tag_errors(self, db_session, hotel_a):
        item_service.register_item(hotel_a.id, 1, "DUP-1")
        result = item_service.register_items_bulk(hotel_a.id, [
            {"rfid_tag": "NEW-1", "item_type_id": 1},
            {"rfid_tag": "dup-1", "item_type_id": 1},
            {"rfid_tag": "NEW-2", "item_type_id": 2},
            {"rfid_tag": "new-2", "item_type_id": 2},
            {"rfid_tag": "bad tag", "item_type_id": 2},
        ])

        assert [i.rfid_tag for i in result.created] == ["NEW-1", "NEW-2"]
        assert [e["rfid_tag"] for e in result.errors] == ["dup-1", "new-2", "bad tag"]
        assert db_session.query(Item).count() == 3


class TestLookup:

    def test_get_by_rfid_falls_back_to_case_insensitive(self, db_session, hotel_a):
        item = item_service.register_item(hotel_a.id, 1, "Mixed-Case-01")
        assert item_service.get_item_by_rfid("Mixed-Case-01").id == item.id
        assert item_service.get_item_by_rfid("MIXED-CASE-01").id == item.id

    def test_get_by_rfid_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            item_service.get_item_by_rfid("NOPE")

    def test_list_filters(self, db_session, hotel_a, hotel_b, make_items):
        make_items(hotel_a, 3, item_type_id=1)
        make_items(hotel_b, 2, item_type_id=2)

        assert len(item_service.list_items(tenant_id=hotel_a.id)) == 3
        assert len(item_service.list_items(item_type_id=2)) == 2
        assert len(item_service.list_items(search=f"T{hotel_b.id}-")) == 2
        assert len(item_service.list_items(status=ITEM_STATUS_AT_HOTEL, limit=4)) == 4

    def test_list_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            item_service.list_items(status="lost")

    def test_dirty_and_ready_lists(self, db_session, hotel_a, make_items):
        items = make_items(hotel_a, 3)
        pickup = pickup_service.create_pickup(hotel_a.id, "BAG-1", [i.id for i in items])
        pickup_service.receive_pickup(pickup.id)
        item_service.mark_clean([items[0].id])

        assert {i.id for i in item_service.list_dirty_items(hotel_a.id)} == {items[1].id, items[2].id}
        assert [i.id for i in item_service.list_ready_items(hotel_a.id)] == [items[0].id]


class TestStatusWrites:

    def test_counted_entry_into_laundry_increments_wash(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.set_status(item.id, ITEM_STATUS_AT_LAUNDRY, count_wash=True)
        db_session.commit()

        item = item_service.get_item(item.id)
        assert item.wash_count == 1
        assert item.last_wash_date is not None

    def test_uncounted_write_leaves_wash_count(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.set_status(item.id, ITEM_STATUS_AT_LAUNDRY)
        item_service.set_status(item.id, ITEM_STATUS_READY, count_wash=True)
        db_session.commit()
        assert item_service.get_item(item.id).wash_count == 0

    def test_unknown_status_rejected(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        with pytest.raises(ValidationError):
            item_service.set_status(item.id, "lost")

    def test_override_is_audited(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.override_status(item.id, ITEM_STATUS_PROCESSING, reason="found in washer")

        assert item_service.get_item(item.id).status == ITEM_STATUS_PROCESSING
        entry = db_session.query(AuditEntry).filter_by(event_type="item.status_overridden").one()
        assert entry.note == "found in washer"
        assert '"from": "at_hotel"' in entry.payload


class TestBulkTransitions:

    def test_mark_clean_skips_ineligible(self, db_session, hotel_a, make_items):
        """Scenario: 3 at_laundry, 1 at_hotel -> count 3, the hotel item skipped."""
        items = make_items(hotel_a, 4)
        dirty = [i.id for i in items[:3]]
        pickup = pickup_service.create_pickup(hotel_a.id, "BAG-CLEAN", dirty)
        pickup_service.receive_pickup(pickup.id)

        result = item_service.mark_clean([i.id for i in items] + [99999])

        assert result.count == 3
        assert result.skipped == [items[3].id, 99999]
        assert item_service.get_item(items[3].id).status == ITEM_STATUS_AT_HOTEL
        for item_id in dirty:
            assert item_service.get_item(item_id).status == ITEM_STATUS_READY

    def test_mark_clean_accepts_processing(self, db_session, hotel_a, make_items):
        items = make_items(hotel_a, 2)
        ids = [i.id for i in items]
        pickup_service.receive_pickup(pickup_service.create_pickup(hotel_a.id, "BAG-P", ids).id)

        processing = item_service.mark_processing([ids[0]])
        assert processing.count == 1
        assert item_service.get_item(ids[0]).status == ITEM_STATUS_PROCESSING

        assert item_service.mark_clean(ids).count == 2

    def test_mark_clean_twice_is_harmless(self, db_session, hotel_a, make_items):
        items = make_items(hotel_a, 2)
        ids = [i.id for i in items]
        pickup_service.receive_pickup(pickup_service.create_pickup(hotel_a.id, "BAG-T", ids).id)

        assert item_service.mark_clean(ids).count == 2
        second = item_service.mark_clean(ids)
        assert second.count == 0
        assert second.skipped == ids

    def test_mark_processing_only_from_laundry(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        result = item_service.mark_processing([item.id])
        assert result.count == 0
        assert result.skipped == [item.id]

    def test_result_dict_shape(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        body = item_service.mark_clean([item.id]).to_dict()
        assert body["count"] == 0
        assert body["skipped"] == [item.id]


class TestCondition:

    def test_flagging_damage_raises_alert(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.set_condition(item.id, is_damaged=True, notes="torn hem")

        item = item_service.get_item(item.id)
        assert item.is_damaged is True
        assert item.notes == "torn hem"
        alert = db_session.query(Alert).one()
        assert alert.alert_type == "damaged_item"
        assert alert.item_id == item.id

    def test_empty_notes_clear_the_note(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.set_condition(item.id, notes="torn hem")

        item_service.set_condition(item.id, is_stained=False)
        assert item_service.get_item(item.id).notes == "torn hem"

        item_service.set_condition(item.id, notes="")
        assert item_service.get_item(item.id).notes is None

    def test_repeated_flag_does_not_duplicate_alert(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.set_condition(item.id, is_stained=True)
        item_service.set_condition(item.id, is_stained=True)
        assert db_session.query(Alert).count() == 1
        assert item_service.list_alerts(hotel_a.id)[0].alert_type == "stained_item"

    def test_condition_never_blocks_workflow(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_service.set_condition(item.id, is_damaged=True, is_stained=True)
        pickup = pickup_service.create_pickup(hotel_a.id, "BAG-DMG", [item.id])
        pickup_service.receive_pickup(pickup.id)
        assert item_service.get_item(item.id).status == ITEM_STATUS_AT_LAUNDRY


class TestDeleteItem:

    def test_delete_blocked_by_open_pickup(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        pickup = pickup_service.create_pickup(hotel_a.id, "BAG-OPEN", [item.id])

        with pytest.raises(ConflictError) as exc_info:
            item_service.delete_item(item.id)
        assert exc_info.value.details["pickup_id"] == pickup.id

    def test_delete_blocked_by_open_delivery(self, db_session, hotel_a, ready_items):
        item, = ready_items(hotel_a, 1)
        delivery = delivery_service.create_delivery(hotel_a.id, [item.id])

        with pytest.raises(ConflictError) as exc_info:
            item_service.delete_item(item.id)
        assert exc_info.value.details["delivery_id"] == delivery.id

    def test_delete_after_batches_closed(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1)
        item_id = item.id
        pickup = pickup_service.create_pickup(hotel_a.id, "BAG-DONE", [item_id])
        pickup_service.receive_pickup(pickup.id)
        item_service.set_condition(item_id, is_damaged=True)

        item_service.delete_item(item_id)

        assert db_session.get(Item, item_id) is None
        assert db_session.query(PickupItem).filter_by(item_id=item_id).count() == 0
        assert db_session.query(Alert).filter_by(item_id=item_id).count() == 0

    def test_delete_unknown_item(self, db_session):
        with pytest.raises(NotFoundError):
            item_service.delete_item(12345)
