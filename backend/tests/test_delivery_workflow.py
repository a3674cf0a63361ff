# Overview: Pytest coverage for the delivery workflow (laundry -> hotel).

"""
Delivery Workflow Tests

Covers:
- All-or-nothing creation, barcodes and parcels
- Forward-only transitions (no skipping) with matching item states
- Parcel scanning, proximity check, cancellation, transport bags
- Full cycle conservation of items and wash counts
"""

import json

import pytest

from laundry.errors import InvalidStateError, NotFoundError, ValidationError
from laundry.models import Delivery, DeliveryItem
from laundry.models.deliveries import (
    DELIVERY_STATUS_CANCELLED,
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_LABEL_PRINTED,
    DELIVERY_STATUS_PACKAGED,
    DELIVERY_STATUS_PICKED_UP,
)
from laundry.models.items import (
    ITEM_STATUS_AT_HOTEL,
    ITEM_STATUS_IN_TRANSIT,
    ITEM_STATUS_LABEL_PRINTED,
    ITEM_STATUS_PACKAGED,
    ITEM_STATUS_READY,
)
from laundry.services import delivery_service, item_service, pickup_service


def _statuses(item_ids):
    return {item_service.get_item(i).status for i in item_ids}


def _advance_to_picked_up(delivery_id):
    delivery_service.print_label(delivery_id)
    delivery_service.package_delivery(delivery_id)
    return delivery_service.pickup_delivery(delivery_id)


class TestCreateDelivery:

    def test_barcode_packages_and_breakdown(self, db_session, hotel_a, ready_items):
        towels = ready_items(hotel_a, 2, prefix="TWL", item_type_id=7)
        sheets = ready_items(hotel_a, 1, prefix="SHT", item_type_id=3)
        ids = [i.id for i in towels + sheets]

        delivery = delivery_service.create_delivery(hotel_a.id, ids, package_count=2)

        assert delivery.barcode == "000000001"
        assert [p.package_barcode for p in delivery.packages] == ["000000001-PKG1", "000000001-PKG2"]
        assert delivery.item_ids == ids
        assert json.loads(delivery.notes) == [
            {"item_type_id": 3, "count": 1},
            {"item_type_id": 7, "count": 2},
        ]
        assert _statuses(ids) == {ITEM_STATUS_READY}

    def test_barcodes_are_sequential(self, db_session, hotel_a, ready_items):
        items = ready_items(hotel_a, 2)
        first = delivery_service.create_delivery(hotel_a.id, [items[0].id], notes="first")
        second = delivery_service.create_delivery(hotel_a.id, [items[1].id])
        assert first.notes == "first"
        assert int(second.barcode) == int(first.barcode) + 1

    def test_not_ready_item_rejects_whole_delivery(self, db_session, hotel_a, ready_items, make_items):
        """Scenario: [ready, ready, at_laundry] -> nothing created."""
        ready = ready_items(hotel_a, 2)
        dirty, = make_items(hotel_a, 1, prefix="DIRTY")
        pickup_service.receive_pickup(pickup_service.create_pickup(hotel_a.id, "BAG-D", [dirty.id]).id)

        with pytest.raises(InvalidStateError):
            delivery_service.create_delivery(hotel_a.id, [ready[0].id, ready[1].id, dirty.id])

        assert db_session.query(Delivery).count() == 0
        assert db_session.query(DeliveryItem).count() == 0

    def test_item_in_open_delivery_cannot_be_claimed(self, db_session, hotel_a, ready_items):
        item, = ready_items(hotel_a, 1)
        delivery_service.create_delivery(hotel_a.id, [item.id])
        with pytest.raises(InvalidStateError):
            delivery_service.create_delivery(hotel_a.id, [item.id])

    def test_foreign_item_rejected(self, db_session, hotel_a, hotel_b, ready_items):
        theirs, = ready_items(hotel_b, 1)
        with pytest.raises(InvalidStateError):
            delivery_service.create_delivery(hotel_a.id, [theirs.id])

    @pytest.mark.parametrize("package_count", [0, -1, "2", True])
    def test_invalid_package_count(self, db_session, hotel_a, ready_items, package_count):
        item, = ready_items(hotel_a, 1)
        with pytest.raises(ValidationError):
            delivery_service.create_delivery(hotel_a.id, [item.id], package_count=package_count)

    def test_empty_item_list(self, db_session, hotel_a):
        with pytest.raises(ValidationError):
            delivery_service.create_delivery(hotel_a.id, [])

    def test_unknown_item(self, db_session, hotel_a):
        with pytest.raises(NotFoundError):
            delivery_service.create_delivery(hotel_a.id, [4242])


class TestTransitions:

    def test_forward_path_moves_items(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 2)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)

        d = delivery_service.print_label(delivery.id)
        assert d.status == DELIVERY_STATUS_LABEL_PRINTED and d.label_printed_at is not None
        assert _statuses(ids) == {ITEM_STATUS_LABEL_PRINTED}

        d = delivery_service.package_delivery(delivery.id)
        assert d.status == DELIVERY_STATUS_PACKAGED
        assert _statuses(ids) == {ITEM_STATUS_PACKAGED}

        d = delivery_service.pickup_delivery(delivery.id)
        assert d.status == DELIVERY_STATUS_PICKED_UP
        assert _statuses(ids) == {ITEM_STATUS_IN_TRANSIT}

        d = delivery_service.deliver(delivery.id, address="Lobby")
        assert d.status == DELIVERY_STATUS_DELIVERED
        assert d.delivery_address == "Lobby"
        assert _statuses(ids) == {ITEM_STATUS_AT_HOTEL}

    def test_skipping_a_step_is_rejected(self, db_session, hotel_a, ready_items):
        """Scenario: deliver straight from label_printed."""
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        delivery_service.print_label(delivery.id)

        with pytest.raises(InvalidStateError):
            delivery_service.deliver(delivery.id)
        with pytest.raises(InvalidStateError):
            delivery_service.pickup_delivery(delivery.id)

        assert delivery_service.get_delivery(delivery.id).status == DELIVERY_STATUS_LABEL_PRINTED
        assert _statuses(ids) == {ITEM_STATUS_LABEL_PRINTED}

    def test_repeating_a_step_is_rejected(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        delivery_service.print_label(delivery.id)
        with pytest.raises(InvalidStateError):
            delivery_service.print_label(delivery.id)

    def test_deliver_leaves_wash_count(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 2)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        _advance_to_picked_up(delivery.id)
        delivery_service.deliver(delivery.id)

        assert {item_service.get_item(i).wash_count for i in ids} == {1}

    def test_unknown_delivery(self, db_session):
        with pytest.raises(NotFoundError):
            delivery_service.print_label(777)


class TestPackageScanning:

    def test_last_parcel_triggers_pickup(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 2)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids, package_count=2)
        delivery_service.print_label(delivery.id)
        delivery_service.package_delivery(delivery.id)

        first = delivery_service.scan_package(f"{delivery.barcode}-PKG1")
        assert first["all_packages_scanned"] is False
        assert first["scanned_packages"] == 1
        assert first["delivery"].status == DELIVERY_STATUS_PACKAGED

        again = delivery_service.scan_package(f"{delivery.barcode}-PKG1")
        assert again["scanned_packages"] == 1

        last = delivery_service.scan_package(f"{delivery.barcode}-PKG2")
        assert last["all_packages_scanned"] is True
        assert last["delivery"].status == DELIVERY_STATUS_PICKED_UP
        assert _statuses(ids) == {ITEM_STATUS_IN_TRANSIT}

    def test_rescan_after_pickup_reports_counts(self, db_session, hotel_a, ready_items, recorded_events):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids, package_count=2)
        delivery_service.print_label(delivery.id)
        delivery_service.package_delivery(delivery.id)
        delivery_service.scan_package(f"{delivery.barcode}-PKG1")
        delivery_service.scan_package(f"{delivery.barcode}-PKG2")

        again = delivery_service.scan_package(f"{delivery.barcode}-PKG2")

        assert again["all_packages_scanned"] is True
        assert again["scanned_packages"] == 2
        assert again["delivery"].status == DELIVERY_STATUS_PICKED_UP
        picked_up = [e for e in recorded_events if e.event_type == "delivery.picked_up"]
        assert len(picked_up) == 1

    def test_rescan_after_delivery_rejected(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        delivery_service.print_label(delivery.id)
        delivery_service.package_delivery(delivery.id)
        delivery_service.scan_package(f"{delivery.barcode}-PKG1")
        delivery_service.deliver(delivery.id)

        with pytest.raises(InvalidStateError):
            delivery_service.scan_package(f"{delivery.barcode}-PKG1")

    def test_scan_before_packaging_rejected(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        with pytest.raises(InvalidStateError):
            delivery_service.scan_package(f"{delivery.barcode}-PKG1")

    def test_unknown_parcel(self, db_session):
        with pytest.raises(NotFoundError):
            delivery_service.scan_package("000000999-PKG1")

    def test_lookup_by_parcel_barcode(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        assert delivery_service.get_delivery_by_barcode(delivery.barcode) is delivery_service.get_delivery(delivery.id)
        assert delivery_service.get_delivery_by_barcode(f"{delivery.barcode}-PKG1").id == delivery.id


class TestProximity:

    def test_haversine_known_distance(self):
        # One degree of latitude is ~111.2 km
        assert delivery_service.haversine_distance(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)

    def test_driver_too_far_rejected(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        _advance_to_picked_up(delivery.id)

        with pytest.raises(ValidationError) as exc_info:
            delivery_service.deliver(delivery.id, latitude=41.0200, longitude=28.9784)
        assert exc_info.value.details["distance"] > 300
        assert delivery_service.get_delivery(delivery.id).status == DELIVERY_STATUS_PICKED_UP
        assert _statuses(ids) == {ITEM_STATUS_IN_TRANSIT}

    def test_driver_nearby_accepted(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        _advance_to_picked_up(delivery.id)

        d = delivery_service.deliver(delivery.id, latitude="41.0090", longitude="28.9784")
        assert d.delivery_latitude == pytest.approx(41.009)

    def test_hotel_without_coordinates_never_blocks(self, db_session, hotel_b, ready_items):
        ids = [i.id for i in ready_items(hotel_b, 1)]
        delivery = delivery_service.create_delivery(hotel_b.id, ids)
        _advance_to_picked_up(delivery.id)

        d = delivery_service.deliver(delivery.id, latitude=0.0, longitude=0.0)
        assert d.status == DELIVERY_STATUS_DELIVERED

    def test_check_disabled_by_config(self, app, db_session, hotel_a, ready_items, monkeypatch):
        monkeypatch.setitem(app.config, "DELIVERY_MAX_DISTANCE_METERS", None)
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        _advance_to_picked_up(delivery.id)

        d = delivery_service.deliver(delivery.id, latitude=0.0, longitude=0.0)
        assert d.status == DELIVERY_STATUS_DELIVERED


class TestCancellation:

    @pytest.mark.parametrize("steps", [0, 1, 2, 3])
    def test_cancel_from_any_open_state(self, db_session, hotel_a, ready_items, steps):
        ids = [i.id for i in ready_items(hotel_a, 2)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        for step in (delivery_service.print_label, delivery_service.package_delivery,
                     delivery_service.pickup_delivery)[:steps]:
            step(delivery.id)

        cancelled = delivery_service.cancel_delivery(delivery.id, reason="hotel closed")

        assert cancelled.status == DELIVERY_STATUS_CANCELLED
        assert cancelled.cancellation_reason == "hotel closed"
        assert _statuses(ids) == {ITEM_STATUS_READY}

    def test_cancelled_items_can_be_delivered_again(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        first = delivery_service.create_delivery(hotel_a.id, ids)
        delivery_service.cancel_delivery(first.id)

        second = delivery_service.create_delivery(hotel_a.id, ids)
        assert second.item_ids == ids
        assert db_session.get(Delivery, first.id).status == DELIVERY_STATUS_CANCELLED

    def test_cannot_cancel_delivered(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        _advance_to_picked_up(delivery.id)
        delivery_service.deliver(delivery.id)

        with pytest.raises(InvalidStateError):
            delivery_service.cancel_delivery(delivery.id)
        assert _statuses(ids) == {ITEM_STATUS_AT_HOTEL}


class TestTransportBags:

    def test_bag_delivers_all_picked_up(self, db_session, hotel_a, hotel_b, ready_items):
        a_ids = [i.id for i in ready_items(hotel_a, 1)]
        b_ids = [i.id for i in ready_items(hotel_b, 2)]
        da = delivery_service.create_delivery(hotel_a.id, a_ids)
        db_ = delivery_service.create_delivery(hotel_b.id, b_ids)

        bag = delivery_service.create_delivery_bag([da.id, db_.id])
        assert bag["bag_code"].startswith("BAG-")
        assert bag["delivery_count"] == 2

        _advance_to_picked_up(da.id)
        _advance_to_picked_up(db_.id)
        delivered = delivery_service.deliver_bag(bag["bag_code"])

        assert [d.id for d in delivered] == [da.id, db_.id]
        assert _statuses(a_ids + b_ids) == {ITEM_STATUS_AT_HOTEL}

    def test_bag_with_nothing_picked_up(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        bag = delivery_service.create_delivery_bag([delivery.id])

        with pytest.raises(NotFoundError):
            delivery_service.deliver_bag(bag["bag_code"])

    def test_closed_delivery_cannot_be_bagged(self, db_session, hotel_a, ready_items):
        ids = [i.id for i in ready_items(hotel_a, 1)]
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        delivery_service.cancel_delivery(delivery.id)

        with pytest.raises(InvalidStateError):
            delivery_service.create_delivery_bag([delivery.id])


class TestFullCycle:

    def test_cycle_returns_items_home_with_one_wash(self, db_session, hotel_a, make_items, recorded_events):
        items = make_items(hotel_a, 3)
        ids = [i.id for i in items]

        pickup = pickup_service.create_pickup(hotel_a.id, "BAG-CYCLE", ids)
        pickup_service.receive_pickup(pickup.id)
        item_service.mark_clean(ids)
        delivery = delivery_service.create_delivery(hotel_a.id, ids)
        _advance_to_picked_up(delivery.id)
        delivery_service.deliver(delivery.id)

        for item_id in ids:
            item = item_service.get_item(item_id)
            assert item.status == ITEM_STATUS_AT_HOTEL
            assert item.wash_count == 1

        assert [e.event_type for e in recorded_events] == [
            "pickup.created",
            "pickup.received",
            "delivery.created",
            "delivery.label_printed",
            "delivery.packaged",
            "delivery.picked_up",
            "delivery.delivered",
        ]
        assert recorded_events[-1].payload["item_type_counts"] == [{"item_type_id": 1, "count": 3}]
