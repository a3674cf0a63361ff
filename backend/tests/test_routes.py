# Overview: Pytest coverage for the JSON API: status codes, error bodies and one full round trip.

"""
API Route Tests

Covers:
- Domain errors mapped to 400 / 404 / 409 with {"error", "code"} bodies
- Request-body validation
- Pickup and delivery round trip over HTTP
- Scan sessions and conflict resolution over HTTP
- Health endpoint
"""


class TestErrorMapping:

    def test_validation_error_is_400(self, client, db_session):
        resp = client.post("/api/tenants", json={"name": "   "})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_missing_field_is_400(self, client, db_session):
        resp = client.post("/api/items", json={"tenant_id": 1, "item_type_id": 1})
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"field": "rfid_tag"}

    def test_non_integer_id_is_400(self, client, db_session):
        resp = client.post("/api/items/mark-clean", json={"item_ids": ["1"]})
        assert resp.status_code == 400

    def test_non_object_body_is_400(self, client, db_session):
        resp = client.post("/api/scan", json=["A"])
        assert resp.status_code == 400

    def test_not_found_is_404(self, client, db_session):
        resp = client.get("/api/items/rfid/NOPE")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NOT_FOUND"

    def test_duplicate_tag_is_409(self, client, db_session, hotel_a):
        body = {"tenant_id": hotel_a.id, "item_type_id": 1, "rfid_tag": "E200-1"}
        assert client.post("/api/items", json=body).status_code == 201

        resp = client.post("/api/items", json=dict(body, rfid_tag="e200-1"))
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "CONFLICT"

    def test_wrong_state_is_409(self, client, db_session, hotel_a):
        pickup = client.post("/api/pickups", json={"tenant_id": hotel_a.id, "bag_code": "BAG-1"}).get_json()
        assert client.post(f"/api/pickups/{pickup['id']}/receive").status_code == 200

        resp = client.post(f"/api/pickups/{pickup['id']}/receive")
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INVALID_STATE"

    def test_unknown_route_stays_404(self, client, db_session):
        assert client.get("/api/nowhere").status_code == 404


class TestScanEndpoint:

    def test_scan_counts(self, client, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1, prefix="SCAN")
        resp = client.post("/api/scan", json={"rfid_tags": [item.rfid_tag, "GHOST"]})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["found"] == 1
        assert body["notFound"] == 1
        assert body["notFoundTags"] == ["GHOST"]
        assert body["items"][0]["id"] == item.id


class TestScanSessionEndpoints:

    def test_session_over_http(self, client, db_session, hotel_a, make_items):
        item, = make_items(hotel_a, 1, prefix="HTTP")
        start = client.post("/api/scan/session/start", json={
            "tenant_id": hotel_a.id,
            "session_type": "pickup",
            "device_uuid": "HH-9",
            "metadata": {"route": "north"},
        })
        assert start.status_code == 201
        session_id = start.get_json()["id"]

        bulk = client.post("/api/scan/bulk", json={
            "session_id": session_id,
            "scans": [
                {"rfid_tag": item.rfid_tag, "signal_strength": -50},
                {"rfid_tag": item.rfid_tag},
                {"rfid_tag": "STRAY-1"},
            ],
        })
        assert bulk.status_code == 200
        assert bulk.get_json() == {
            "session_id": session_id, "added": 2, "updated": 0, "total": 2, "conflicts": [],
        }

        end = client.post(f"/api/scan/session/{session_id}/end", json={})
        assert end.status_code == 200
        assert end.get_json()["status"] == "completed"
        assert end.get_json()["item_count"] == 2

        late = client.post("/api/scan/bulk", json={"session_id": session_id, "scans": [{"rfid_tag": "LATE-1"}]})
        assert late.status_code == 409

        detail = client.get(f"/api/scan/session/{session_id}").get_json()
        reads = {e["rfid_tag"]: e["read_count"] for e in detail["events"]}
        assert reads == {item.rfid_tag: 2, "STRAY-1": 1}

        listed = client.get(f"/api/scan/sessions?tenant_id={hotel_a.id}&status=completed").get_json()
        assert [s["id"] for s in listed["sessions"]] == [session_id]

    def test_bad_session_type_is_400(self, client, db_session, hotel_a):
        resp = client.post("/api/scan/session/start", json={"tenant_id": hotel_a.id, "session_type": "wash"})
        assert resp.status_code == 400

    def test_conflicts_over_http(self, client, db_session, hotel_a):
        ids = []
        for device in ("HH-1", "HH-2"):
            resp = client.post("/api/scan/session/start", json={
                "tenant_id": hotel_a.id, "session_type": "receive", "device_uuid": device,
            })
            ids.append(resp.get_json()["id"])
            client.post("/api/scan/bulk", json={"session_id": ids[-1], "scans": [{"rfid_tag": "SHEET-1"}]})

        open_conflicts = client.get("/api/scan/conflicts?resolved=false").get_json()["conflicts"]
        assert len(open_conflicts) == 1
        assert open_conflicts[0]["winning_session_id"] == ids[0]

        resp = client.post(
            f"/api/scan/conflicts/{open_conflicts[0]['id']}/resolve",
            json={"winning_session_id": ids[1], "resolved_by": "lead"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["winning_session_id"] == ids[1]
        assert client.get("/api/scan/conflicts?resolved=false").get_json()["conflicts"] == []
        assert client.get("/api/scan/conflicts?resolved=maybe").status_code == 400


class TestRoundTrip:

    def test_pickup_to_delivery_over_http(self, client, db_session, hotel_a):
        bulk = client.post("/api/items/bulk", json={
            "tenant_id": hotel_a.id,
            "items": [{"rfid_tag": f"RT-{n}", "item_type_id": 4} for n in range(3)],
        })
        assert bulk.status_code == 201
        ids = [item["id"] for item in bulk.get_json()["items"]]

        pickup = client.post("/api/pickups", json={
            "tenant_id": hotel_a.id, "bag_code": "BAG-RT", "item_ids": ids,
        }).get_json()
        client.post(f"/api/pickups/{pickup['id']}/receive")

        dirty = client.get(f"/api/items/dirty?tenant_id={hotel_a.id}").get_json()
        assert dirty["count"] == 3

        clean = client.post("/api/items/mark-clean", json={"item_ids": ids}).get_json()
        assert clean["count"] == 3

        created = client.post("/api/deliveries", json={
            "tenant_id": hotel_a.id, "item_ids": ids, "package_count": 2,
        })
        assert created.status_code == 201
        delivery = created.get_json()
        assert len(delivery["packages"]) == 2

        for step in ("print-label", "package"):
            assert client.post(f"/api/deliveries/{delivery['id']}/{step}").status_code == 200
        for pkg in delivery["packages"]:
            scanned = client.post(f"/api/deliveries/packages/{pkg['package_barcode']}/scan")
            assert scanned.status_code == 200
        assert scanned.get_json()["all_packages_scanned"] is True

        far = client.post(f"/api/deliveries/{delivery['id']}/deliver", json={"latitude": 40.0, "longitude": 29.0})
        assert far.status_code == 400

        done = client.post(f"/api/deliveries/{delivery['id']}/deliver", json={
            "latitude": 41.0083, "longitude": 28.9785, "address": "Front desk",
        })
        assert done.status_code == 200
        assert done.get_json()["status"] == "delivered"

        for item_id in ids:
            item = client.get(f"/api/items/{item_id}").get_json()
            assert item["status"] == "at_hotel"
            assert item["wash_count"] == 1

        by_barcode = client.get(f"/api/deliveries/barcode/{delivery['barcode']}")
        assert by_barcode.get_json()["id"] == delivery["id"]

    def test_hard_delete_over_http(self, client, db_session, hotel_b, make_items):
        make_items(hotel_b, 2)
        tenant_id = hotel_b.id
        resp = client.delete(f"/api/tenants/{tenant_id}")
        assert resp.status_code == 200
        assert resp.get_json()["removed"]["items"] == 2
        assert client.get(f"/api/tenants/{tenant_id}").status_code == 404


class TestSystem:

    def test_health(self, client, db_session, hotel_a):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["tenants"] == 1

    def test_version(self, client):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert "api_version" in resp.get_json()
