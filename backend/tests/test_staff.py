"""
Staff records, location assignments and login credentials.
"""

import pytest

from salonerp.models import User, StaffMember, Service
from salonerp.services import staff_service
from salonerp.services.staff_service import (
    PasswordValidationError,
    build_username,
    generate_temporary_password,
    validate_password_strength,
    verify_password,
)


@pytest.mark.parametrize("name, number, expected", [
    ("Jane Smith", "EMP-007", "jane.smith.emp007"),
    ("  Ana  María O'Neil ", None, "ana.mara.oneil"),
    ("!!!", "", "staff"),
])
def test_build_username(name, number, expected):
    assert build_username(name, number) == expected


def test_generated_passwords_are_strong():
    for _ in range(20):
        password = generate_temporary_password()
        assert len(password) == 12
        validate_password_strength(password)


@pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"])
def test_weak_passwords_rejected(password):
    with pytest.raises(PasswordValidationError):
        validate_password_strength(password)


def test_create_staff_with_locations(client, db_session, location_a):
    response = client.post("/api/staff", json={
        "name": "Sam Lee",
        "employee_number": "EMP-010",
        "job_role": "colorist",
        "location_ids": [location_a.id],
    })

    assert response.status_code == 201
    body = response.get_json()
    assert body["location_ids"] == [location_a.id]
    assert body["has_credentials"] is False


def test_duplicate_employee_number(client, db_session, stylist):
    response = client.post("/api/staff", json={"name": "Other", "employee_number": "EMP-007"})

    assert response.status_code == 409


def test_create_staff_unknown_location(client, db_session):
    response = client.post("/api/staff", json={"name": "Sam Lee", "location_ids": [4040]})

    assert response.status_code == 404


def test_set_staff_locations(client, db_session, stylist, location_a, location_b):
    response = client.put(f"/api/staff/{stylist.id}/locations", json={"location_ids": [location_b.id]})

    assert response.status_code == 200
    assert response.get_json()["location_ids"] == [location_b.id]

    at_a = client.get(f"/api/staff?location_id={location_a.id}").get_json()["staff"]
    at_b = client.get(f"/api/staff?location_id={location_b.id}").get_json()["staff"]
    assert at_a == []
    assert [s["id"] for s in at_b] == [stylist.id]


def test_set_staff_locations_requires_unrestricted_access(client, db_session, stylist, location_a):
    response = client.put(
        f"/api/staff/{stylist.id}/locations",
        json={"location_ids": [location_a.id]},
        headers={"X-User-Id": "2", "X-User-Locations": str(location_a.id)},
    )

    assert response.status_code == 403


def test_unassigned_staff_cannot_be_booked_at_other_location(
    client, db_session, stylist, salon_client, haircut, location_a, location_b
):
    staff_service.set_staff_locations(stylist.id, [location_a.id])

    response = client.post("/api/appointments", json={
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "location_id": location_b.id,
        "date": "2025-01-10T10:00:00Z",
        "duration": 60,
    })

    assert response.status_code == 400


def test_create_credentials(client, db_session, stylist):
    response = client.post("/api/staff/credentials", json={"staff_id": stylist.id})

    assert response.status_code == 201
    body = response.get_json()
    assert body["username"] == "jane.smith.emp007"
    assert body["user"]["email"] == "jane.smith.emp007@salon.test"
    assert "password_hash" not in body["user"]

    user = db_session.query(User).filter_by(email="jane.smith.emp007@salon.test").one()
    assert user.password_hash != body["temporary_password"]
    assert verify_password(body["temporary_password"], user.password_hash)

    listed = client.get("/api/staff/credentials").get_json()["credentials"]
    assert [row["staff_id"] for row in listed] == [stylist.id]


def test_credentials_issued_once(client, db_session, stylist):
    first = client.post("/api/staff/credentials", json={"staff_id": stylist.id})
    second = client.post("/api/staff/credentials", json={"staff_id": stylist.id})

    assert first.status_code == 201
    assert second.status_code == 409


def test_credentials_with_custom_password(client, db_session, stylist):
    weak = client.post("/api/staff/credentials", json={"staff_id": stylist.id, "password": "password"})
    assert weak.status_code == 400

    strong = client.post("/api/staff/credentials", json={"staff_id": stylist.id, "password": "Salon#2025ok"})
    assert strong.status_code == 201
    assert strong.get_json()["temporary_password"] == "Salon#2025ok"


def test_credentials_unknown_staff(client, db_session):
    response = client.post("/api/staff/credentials", json={"staff_id": 777})

    assert response.status_code == 404


def test_credentials_listing_includes_staff_without_login(client, db_session, stylist, location_a):
    other = client.post("/api/staff", json={"name": "Sam Lee", "location_ids": [location_a.id]}).get_json()
    client.post("/api/staff/credentials", json={"staff_id": stylist.id})

    listed = client.get("/api/staff/credentials").get_json()["credentials"]

    by_id = {row["staff_id"]: row for row in listed}
    assert by_id[stylist.id]["has_credentials"] is True
    assert by_id[stylist.id]["user"]["email"] == "jane.smith.emp007@salon.test"
    assert by_id[other["id"]]["has_credentials"] is False
    assert by_id[other["id"]]["user"] is None
    assert by_id[other["id"]]["location_ids"] == [location_a.id]


def test_reset_password_issues_new_temporary_password(client, db_session, stylist):
    first = client.post("/api/staff/credentials", json={"staff_id": stylist.id}).get_json()

    response = client.put(f"/api/staff/credentials/{stylist.id}", json={"action": "reset_password"})

    assert response.status_code == 200
    new_password = response.get_json()["temporary_password"]
    user = db_session.query(User).one()
    assert verify_password(new_password, user.password_hash)
    assert not verify_password(first["temporary_password"], user.password_hash)


def test_update_password_enforces_strength(client, db_session, stylist):
    client.post("/api/staff/credentials", json={"staff_id": stylist.id})
    url = f"/api/staff/credentials/{stylist.id}"

    weak = client.put(url, json={"action": "update_password", "new_password": "password"})
    strong = client.put(url, json={"action": "update_password", "new_password": "Chair#Seven7"})

    assert weak.status_code == 400
    assert strong.status_code == 200
    assert verify_password("Chair#Seven7", db_session.query(User).one().password_hash)


def test_toggle_active_flips_account(client, db_session, stylist):
    client.post("/api/staff/credentials", json={"staff_id": stylist.id})
    url = f"/api/staff/credentials/{stylist.id}"

    off = client.put(url, json={"action": "toggle_active"}).get_json()
    on = client.put(url, json={"action": "toggle_active"}).get_json()

    assert off["is_active"] is False
    assert on["is_active"] is True


def test_update_locations_action(client, db_session, stylist, location_b):
    client.post("/api/staff/credentials", json={"staff_id": stylist.id})

    response = client.put(
        f"/api/staff/credentials/{stylist.id}",
        json={"action": "update_locations", "location_ids": [location_b.id]},
    )

    assert response.status_code == 200
    assert response.get_json()["location_ids"] == [location_b.id]


def test_credential_actions_error_codes(client, db_session, stylist):
    no_login = client.put(f"/api/staff/credentials/{stylist.id}", json={"action": "reset_password"})
    unknown_staff = client.put("/api/staff/credentials/4321", json={"action": "toggle_active"})
    bad_action = client.put(f"/api/staff/credentials/{stylist.id}", json={"action": "promote"})

    assert no_login.status_code == 400
    assert unknown_staff.status_code == 404
    assert bad_action.status_code == 400


def test_delete_credentials_keeps_staff(client, db_session, stylist):
    client.post("/api/staff/credentials", json={"staff_id": stylist.id})

    response = client.delete(f"/api/staff/credentials/{stylist.id}")

    assert response.status_code == 200
    assert response.get_json()["staff"]["has_credentials"] is False
    assert db_session.query(User).count() == 0
    assert db_session.get(StaffMember, stylist.id) is not None

    assert client.delete(f"/api/staff/credentials/{stylist.id}").status_code == 400
    assert client.delete("/api/staff/credentials/4321").status_code == 404
    reissued = client.post("/api/staff/credentials", json={"staff_id": stylist.id})
    assert reissued.status_code == 201


def test_staff_service_assignments(client, db_session, stylist, haircut):
    color = Service(category_id=haircut.category_id, name="Color", duration=90, price_cents=9000)
    db_session.add(color)
    db_session.commit()
    url = f"/api/staff/{stylist.id}/services"

    replaced = client.put(url, json={"service_ids": [haircut.id, color.id]})
    assert replaced.status_code == 200
    assert [s["name"] for s in replaced.get_json()["services"]] == ["Color", "Haircut"]

    narrowed = client.put(url, json={"service_ids": [color.id]}).get_json()
    assert [s["id"] for s in narrowed["services"]] == [color.id]

    added = client.post(url, json={"service_id": haircut.id}).get_json()
    assert sorted(s["id"] for s in added["services"]) == sorted([haircut.id, color.id])

    removed = client.delete(f"{url}/{color.id}")
    assert removed.status_code == 200
    assert [s["id"] for s in client.get(url).get_json()["services"]] == [haircut.id]


def test_staff_service_assignment_errors(client, db_session, stylist, haircut):
    url = f"/api/staff/{stylist.id}/services"

    assert client.put(url, json={"service_ids": "all"}).status_code == 400
    assert client.put(url, json={"service_ids": [9999]}).status_code == 404
    assert client.post(url, json={}).status_code == 400
    assert client.post(url, json={"service_id": 9999}).status_code == 404
    assert client.get("/api/staff/4321/services").status_code == 404
    assert client.delete(f"{url}/{haircut.id}").status_code == 404


def test_update_locations_action_requires_credentials(client, db_session, stylist, location_b):
    response = client.put(
        f"/api/staff/credentials/{stylist.id}",
        json={"action": "update_locations", "location_ids": [location_b.id]},
    )

    assert response.status_code == 400
    assert len(db_session.get(StaffMember, stylist.id).location_ids) == 2
