# Overview: Pytest coverage for bulk RFID scan reconciliation.

from laundry.models import Item
from laundry.services import scan_service


class TestScan:
    """scan() is read-only and never raises on bad input."""

    def test_found_and_not_found(self, db_session, hotel_a):
        """Scenario: A and C known, B unknown."""
        from laundry.services import item_service

        item_service.register_item(hotel_a.id, 1, "A")
        item_service.register_item(hotel_a.id, 1, "C")

        result = scan_service.scan(["A", "B", "C"])

        assert result.found == 2
        assert result.not_found == 1
        assert result.not_found_tags == ["B"]
        assert [i.rfid_tag for i in result.items] == ["A", "C"]

    def test_duplicates_counted_once(self, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1, prefix="DUP")
        result = scan_service.scan([item.rfid_tag, item.rfid_tag.lower(), f"  {item.rfid_tag} "])
        assert result.found == 1
        assert result.not_found == 0

    def test_partition_covers_distinct_input(self, db_session, hotel_a, make_items):
        items = make_items(hotel_a, 3)
        tags = [i.rfid_tag for i in items] + ["X-1", "X-2", "X-1"]
        result = scan_service.scan(tags)
        assert result.found + result.not_found == 5

    def test_malformed_and_empty_tags_are_not_found(self, db_session):
        result = scan_service.scan(["", "bad tag", None])
        assert result.found == 0
        assert result.not_found == 3

    def test_empty_input(self, db_session):
        result = scan_service.scan([])
        assert result.to_dict() == {"items": [], "found": 0, "notFound": 0, "notFoundTags": []}

    def test_tenant_filter_hides_foreign_items(self, db_session, hotel_a, hotel_b, make_items):
        mine, = make_items(hotel_a, 1, prefix="MINE")
        theirs, = make_items(hotel_b, 1, prefix="THEIRS")

        result = scan_service.scan([mine.rfid_tag, theirs.rfid_tag], tenant_id=hotel_a.id)

        assert [i.id for i in result.items] == [mine.id]
        assert result.not_found_tags == [theirs.rfid_tag]

    def test_idempotent_and_read_only(self, db_session, hotel_a, make_items):
        items = make_items(hotel_a, 2)
        versions = {i.id: i.version_id for i in items}
        tags = [i.rfid_tag for i in items] + ["UNKNOWN"]

        first = scan_service.scan(tags).to_dict()
        second = scan_service.scan(tags).to_dict()

        assert first == second
        for item in db_session.query(Item).all():
            assert item.version_id == versions[item.id]
