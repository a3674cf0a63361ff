# Overview: Pytest coverage for the tenant (hotel) registry.

import pytest

from laundry.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from laundry.models import AuditEntry, Tenant
from laundry.services import item_service, tenant_service


class TestCreateTenant:
    """Registration and validation."""

    def test_create_minimal(self, db_session):
        tenant = tenant_service.create_tenant("  Seaside Inn  ")
        assert tenant.id is not None
        assert tenant.name == "Seaside Inn"
        assert tenant.is_active is True
        assert tenant.email is None

    def test_email_is_normalized(self, db_session):
        tenant = tenant_service.create_tenant("Inn", email="Front.Desk@Inn.Example")
        assert tenant.email == "front.desk@inn.example"

    def test_empty_name_rejected(self, db_session):
        with pytest.raises(ValidationError):
            tenant_service.create_tenant("   ")

    def test_malformed_email_rejected(self, db_session):
        with pytest.raises(ValidationError):
            tenant_service.create_tenant("Inn", email="not-an-email")

    def test_latitude_out_of_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            tenant_service.create_tenant("Inn", latitude=91, longitude=0)

    def test_duplicate_email_conflicts(self, db_session, hotel_a):
        with pytest.raises(ConflictError):
            tenant_service.create_tenant("Copycat", email="OPS@grand.example")
        assert db_session.query(Tenant).count() == 1

    def test_creation_is_audited(self, db_session, hotel_a):
        entry = db_session.query(AuditEntry).filter_by(event_type="tenant.created").one()
        assert entry.entity_id == hotel_a.id


class TestLookupAndUpdate:

    def test_get_unknown_tenant(self, db_session):
        with pytest.raises(NotFoundError):
            tenant_service.get_tenant(999)

    def test_list_ordered_by_name(self, db_session, hotel_a, hotel_b):
        names = [t.name for t in tenant_service.list_tenants()]
        assert names == sorted(names)

    def test_list_active_only(self, db_session, hotel_a, hotel_b):
        tenant_service.deactivate_tenant(hotel_b.id)
        ids = [t.id for t in tenant_service.list_tenants(active_only=True)]
        assert ids == [hotel_a.id]

    def test_partial_update(self, db_session, hotel_b):
        updated = tenant_service.update_tenant(hotel_b.id, phone=" +90 212 000 ", latitude="40.5")
        assert updated.phone == "+90 212 000"
        assert updated.latitude == 40.5
        assert updated.name == "Hotel B - Harbour"

    def test_update_rejects_unknown_fields(self, db_session, hotel_b):
        with pytest.raises(ValidationError):
            tenant_service.update_tenant(hotel_b.id, rfid_tag="X")

    def test_update_email_to_taken_address(self, db_session, hotel_a, hotel_b):
        with pytest.raises(ConflictError):
            tenant_service.update_tenant(hotel_b.id, email="ops@grand.example")

    def test_update_email_to_own_address(self, db_session, hotel_a):
        updated = tenant_service.update_tenant(hotel_a.id, email="ops@grand.example")
        assert updated.email == "ops@grand.example"


class TestDeactivation:

    def test_deactivate_is_idempotent(self, db_session, hotel_a):
        tenant_service.deactivate_tenant(hotel_a.id)
        tenant_service.deactivate_tenant(hotel_a.id)
        assert tenant_service.get_tenant(hotel_a.id).is_active is False
        assert db_session.query(AuditEntry).filter_by(event_type="tenant.deactivated").count() == 1

    def test_inactive_tenant_cannot_register_items(self, db_session, hotel_a):
        tenant_service.deactivate_tenant(hotel_a.id)
        with pytest.raises(InvalidStateError):
            item_service.register_item(hotel_a.id, 1, "TAG-1")

    def test_require_active_tenant_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            tenant_service.require_active_tenant(42)
