"""
HTTP tests for /api/appointments and /api/client-portal.
"""

from datetime import timedelta

from salonerp.time_utils import utcnow


def _future(hours: int = 24) -> str:
    return (utcnow() + timedelta(hours=hours)).replace(microsecond=0).isoformat() + "Z"


def _book(client, salon_client, stylist, haircut, **overrides):
    body = {
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "date": "2025-01-10T10:00:00Z",
        "duration": 60,
    }
    body.update(overrides)
    return client.post("/api/appointments", json=body)


def test_create_without_location(client, db_session, salon_client, stylist, haircut):
    response = _book(client, salon_client, stylist, haircut)

    assert response.status_code == 201
    body = response.get_json()
    assert body["status"] == "pending"
    assert body["location_id"] is None
    assert body["date"] == "2025-01-10T10:00:00Z"
    assert body["end"] == "2025-01-10T11:00:00Z"
    assert len(body["status_history"]) == 1
    assert body["status_history"][0]["updated_by"] == "system"


def test_actor_comes_from_headers(client, db_session, salon_client, stylist, haircut):
    response = client.post(
        "/api/appointments",
        json={
            "client_id": salon_client.id,
            "staff_id": stylist.id,
            "service_id": haircut.id,
            "date": "2025-01-10T10:00:00Z",
            "duration": 45,
        },
        headers={"X-User-Id": "12", "X-User-Name": "Maria"},
    )

    assert response.status_code == 201
    assert response.get_json()["status_history"][0]["updated_by"] == "Maria"


def test_create_missing_fields(client, db_session, salon_client, stylist):
    response = client.post("/api/appointments", json={
        "client_id": salon_client.id,
        "staff_id": stylist.id,
    })

    assert response.status_code == 400
    assert "Missing required fields" in response.get_json()["error"]


def test_create_unknown_service(client, db_session, salon_client, stylist, haircut):
    response = _book(client, salon_client, stylist, haircut, service_id=9999)

    assert response.status_code == 404


def test_create_at_location_outside_access(client, db_session, salon_client, stylist, haircut, location_a, location_b):
    response = client.post(
        "/api/appointments",
        json={
            "client_id": salon_client.id,
            "staff_id": stylist.id,
            "service_id": haircut.id,
            "date": "2025-01-10T10:00:00Z",
            "duration": 60,
            "location_id": location_b.id,
        },
        headers={"X-User-Id": "3", "X-User-Locations": str(location_a.id)},
    )

    assert response.status_code == 403


def test_status_patch_flow(client, db_session, salon_client, stylist, haircut):
    appointment_id = _book(client, salon_client, stylist, haircut).get_json()["id"]

    confirmed = client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "confirmed"})
    completed = client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "completed"})

    assert confirmed.status_code == 200
    assert completed.status_code == 200
    body = completed.get_json()
    assert body["status"] == "completed"
    assert [e["status"] for e in body["status_history"]] == ["pending", "confirmed", "completed"]


def test_status_patch_illegal_transition(client, db_session, salon_client, stylist, haircut):
    appointment_id = _book(client, salon_client, stylist, haircut).get_json()["id"]

    response = client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "completed"})

    assert response.status_code == 409
    body = response.get_json()
    assert body["current_status"] == "pending"
    assert "confirmed" in body["allowed_transitions"]
    assert "completed" not in body["allowed_transitions"]

    fetched = client.get(f"/api/appointments/{appointment_id}").get_json()
    assert len(fetched["status_history"]) == 1


def test_status_patch_validation(client, db_session, salon_client, stylist, haircut):
    appointment_id = _book(client, salon_client, stylist, haircut).get_json()["id"]

    assert client.patch(f"/api/appointments/{appointment_id}/status", json={}).status_code == 400
    assert client.patch(
        f"/api/appointments/{appointment_id}/status", json={"status": "done"}
    ).status_code == 400
    assert client.patch("/api/appointments/9999/status", json={"status": "confirmed"}).status_code == 404


def test_put_rejects_status(client, db_session, salon_client, stylist, haircut):
    appointment_id = _book(client, salon_client, stylist, haircut).get_json()["id"]

    response = client.put(f"/api/appointments/{appointment_id}", json={"status": "cancelled"})

    assert response.status_code == 400


def test_put_on_cancelled_appointment_conflicts(client, db_session, salon_client, stylist, haircut):
    appointment_id = _book(client, salon_client, stylist, haircut).get_json()["id"]
    client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "cancelled"})

    response = client.put(f"/api/appointments/{appointment_id}", json={"notes": "late change"})

    assert response.status_code == 409


def test_list_filters_by_status_and_date(client, db_session, salon_client, stylist, haircut):
    first = _book(client, salon_client, stylist, haircut).get_json()["id"]
    _book(client, salon_client, stylist, haircut, date="2025-01-11T10:00:00Z")
    client.patch(f"/api/appointments/{first}/status", json={"status": "confirmed"})

    confirmed = client.get("/api/appointments?status=confirmed").get_json()["appointments"]
    by_day = client.get("/api/appointments?date=2025-01-11").get_json()["appointments"]

    assert [a["id"] for a in confirmed] == [first]
    assert [a["date"] for a in by_day] == ["2025-01-11T10:00:00Z"]


def test_blocked_time_endpoint(client, db_session, stylist):
    response = client.post("/api/appointments/blocked", json={
        "staff_id": stylist.id,
        "date": "2025-02-01T12:00:00Z",
        "duration": 60,
        "notes": "Lunch",
    })

    assert response.status_code == 201
    body = response.get_json()
    assert body["type"] == "blocked"
    assert body["status"] == "blocked"
    assert body["client_id"] is None


def test_portal_booking(client, db_session, salon_client, stylist, haircut, location_a):
    response = client.post("/api/client-portal/appointments", json={
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "location_id": location_a.id,
        "date": _future(),
        "duration": 60,
    })

    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["appointment"]["source"] == "client_portal"
    assert body["appointment"]["status_history"][0]["updated_by"] == "Client Portal"


def test_portal_requires_location(client, db_session, salon_client, stylist, haircut):
    response = client.post("/api/client-portal/appointments", json={
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "date": _future(),
        "duration": 60,
    })

    assert response.status_code == 400
    assert "location_id" in response.get_json()["error"]


def test_portal_rejects_past_date(client, db_session, salon_client, stylist, haircut, location_a):
    response = client.post("/api/client-portal/appointments", json={
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "location_id": location_a.id,
        "date": "2020-01-01T09:00:00Z",
        "duration": 60,
    })

    assert response.status_code == 400


def test_portal_conflict_lists_overlaps(client, db_session, salon_client, stylist, haircut, location_a):
    start = _future(30)
    body = {
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "location_id": location_a.id,
        "date": start,
        "duration": 60,
    }
    first = client.post("/api/client-portal/appointments", json=body).get_json()["appointment"]

    response = client.post("/api/client-portal/appointments", json=body)

    assert response.status_code == 409
    conflicts = response.get_json()["conflicts"]
    assert [c["id"] for c in conflicts] == [first["id"]]
    assert conflicts[0]["booking_reference"] == first["booking_reference"]


def test_portal_slot_frees_after_cancel(client, db_session, salon_client, stylist, haircut, location_a):
    body = {
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "location_id": location_a.id,
        "date": _future(30),
        "duration": 60,
    }
    first = client.post("/api/client-portal/appointments", json=body).get_json()["appointment"]
    client.patch(f"/api/appointments/{first['id']}/status", json={"status": "cancelled"})

    response = client.post("/api/client-portal/appointments", json=body)

    assert response.status_code == 201


def test_portal_listing_filters_by_client(client, db_session, salon_client, stylist, haircut, location_a):
    other = client.post("/api/clients", json={"name": "Blake Rivers"}).get_json()
    booked = {}
    for client_id, hours in ((salon_client.id, 48), (other["id"], 50)):
        booked[client_id] = client.post("/api/client-portal/appointments", json={
            "client_id": client_id,
            "staff_id": stylist.id,
            "service_id": haircut.id,
            "location_id": location_a.id,
            "date": _future(hours),
            "duration": 60,
        }).get_json()["appointment"]

    response = client.get(f"/api/client-portal/appointments?client_id={salon_client.id}")

    assert response.status_code == 200
    listed = response.get_json()["appointments"]
    assert [a["id"] for a in listed] == [booked[salon_client.id]["id"]]
    assert listed[0]["client_name"] == "Alex Doe"

    everything = client.get("/api/client-portal/appointments").get_json()["appointments"]
    assert sorted(a["id"] for a in everything) == sorted(a["id"] for a in booked.values())
