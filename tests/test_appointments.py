import os

from bson import ObjectId

import config
from tests.helpers import assert_history_consistent, statuses


def _get(mongo, appointment_id):
    return mongo["appointment"].find_one({"_id": ObjectId(appointment_id)})


def test_full_job_lifecycle(client, mongo, customer, beekeeper, admin_user, book):
    appointment_id = book(customer, date="2024-06-01", address="12 Elm St")
    doc = _get(mongo, appointment_id)
    assert doc["status"] == "pending"
    assert statuses(doc) == ["pending"]
    assert doc["service_charge"] == 500
    assert doc["location"]["address"] == "12 Elm St"
    assert doc["beekeeper_id"] is None

    res = client.patch(
        f"/api/admin/appointments/{appointment_id}/assign",
        json={"beekeeper_id": beekeeper["_id"]},
        headers=admin_user["headers"],
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "accepted"
    assert body["beekeeper_id"] == beekeeper["_id"]
    assert statuses(body) == ["pending", "accepted"]

    res = client.patch(
        f"/api/appointments/{appointment_id}/status", json={"status": "completed"}, headers=beekeeper["headers"]
    )
    assert res.status_code == 200
    assert statuses(res.json()) == ["pending", "accepted", "completed"]
    assert_history_consistent(res.json())

    res = client.post(
        f"/api/appointments/{appointment_id}/review",
        json={"rating": 5, "review": " Quick and careful "},
        headers=customer["headers"],
    )
    assert res.status_code == 200
    assert res.json()["rating"] == 5
    assert res.json()["review"] == "Quick and careful"


def test_booking_with_photo(client, customer):
    res = client.post(
        "/api/appointments",
        data={
            "full_name": "Jane Doe",
            "email": "jane@hivehelp.io",
            "phone": "555-0100",
            "date": "2024-07-04",
            "time": "09:30",
            "address": "1 Oak Ave",
            "latitude": "40.7",
            "longitude": "-74.0",
        },
        files={"photo": ("nest.jpg", b"jpeg-bytes", "image/jpeg")},
        headers=customer["headers"],
    )
    assert res.status_code == 201, res.text
    assert res.json()["message"] == "Your booking is taken under process!"
    listed = client.get("/api/appointments", headers=customer["headers"]).json()
    assert listed[0]["location"]["latitude"] == 40.7
    assert os.path.exists(os.path.join(config.UPLOAD_DIR, listed[0]["photo_path"]))


def test_booking_validation(client, customer):
    res = client.post("/api/appointments", data={"full_name": "Jane"}, headers=customer["headers"])
    assert res.status_code == 422

    res = client.post(
        "/api/appointments",
        data={"full_name": "J", "email": "j@hivehelp.io", "phone": "1", "date": "June 1st", "time": "10", "address": "x"},
        headers=customer["headers"],
    )
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_input"


def test_booking_requires_authentication(client):
    assert client.post("/api/appointments", data={"full_name": "Jane"}).status_code == 401


def test_cancel_twice(client, mongo, customer, book):
    appointment_id = book(customer)
    first = client.patch(f"/api/appointments/{appointment_id}/cancel", headers=customer["headers"])
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert statuses(first.json()) == ["pending", "cancelled"]

    second = client.patch(f"/api/appointments/{appointment_id}/cancel", headers=customer["headers"])
    assert second.status_code == 400
    assert second.json()["error"] == "invalid_state"
    assert len(_get(mongo, appointment_id)["status_history"]) == 2


def test_only_owner_cancels_or_reviews(client, customer, other_customer, beekeeper, book):
    appointment_id = book(customer)
    assert client.patch(f"/api/appointments/{appointment_id}/cancel", headers=other_customer["headers"]).status_code == 403
    assert client.patch(f"/api/appointments/{appointment_id}/cancel", headers=beekeeper["headers"]).status_code == 403
    assert client.patch(f"/api/appointments/{appointment_id}/cancel").status_code == 401

    review = {"rating": 4}
    assert client.post(f"/api/appointments/{appointment_id}/review", json=review, headers=other_customer["headers"]).status_code == 403
    assert client.post(f"/api/appointments/{appointment_id}/review", json=review).status_code == 401


def test_cancel_unknown_appointment(client, customer):
    res = client.patch("/api/appointments/5f8d0d55b54764421b7156c9/cancel", headers=customer["headers"])
    assert res.status_code == 404


def test_review_requires_completed_job(client, customer, book):
    appointment_id = book(customer)
    res = client.post(f"/api/appointments/{appointment_id}/review", json={"rating": 4}, headers=customer["headers"])
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_state"


def test_review_rating_bounds(client, mongo, customer, beekeeper, admin_user, book):
    appointment_id = book(customer)
    client.patch(
        f"/api/admin/appointments/{appointment_id}/assign", json={"beekeeper_id": beekeeper["_id"]}, headers=admin_user["headers"]
    )
    client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "completed"}, headers=beekeeper["headers"])
    res = client.post(f"/api/appointments/{appointment_id}/review", json={"rating": 6}, headers=customer["headers"])
    assert res.status_code == 400
    assert _get(mongo, appointment_id)["rating"] is None


def test_status_update_permissions(client, customer, beekeeper, other_beekeeper, admin_user, book):
    appointment_id = book(customer)
    client.patch(
        f"/api/admin/appointments/{appointment_id}/assign", json={"beekeeper_id": beekeeper["_id"]}, headers=admin_user["headers"]
    )
    url = f"/api/appointments/{appointment_id}/status"
    assert client.patch(url, json={"status": "completed"}, headers=other_beekeeper["headers"]).status_code == 403
    assert client.patch(url, json={"status": "completed"}, headers=customer["headers"]).status_code == 403
    assert client.patch(url, json={"status": "completed"}, headers=admin_user["headers"]).status_code == 200


def test_transition_graph_is_enforced(client, customer, beekeeper, admin_user, book):
    appointment_id = book(customer)
    url = f"/api/admin/appointments/{appointment_id}/status"

    res = client.patch(url, json={"status": "finished"}, headers=admin_user["headers"])
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_input"

    res = client.patch(url, json={"status": "completed"}, headers=admin_user["headers"])
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_transition"

    res = client.patch(url, json={"status": "accepted"}, headers=admin_user["headers"])
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_state"

    assert client.patch(url, json={"status": "cancelled"}, headers=admin_user["headers"]).status_code == 200
    res = client.patch(url, json={"status": "pending"}, headers=admin_user["headers"])
    assert res.json()["error"] == "invalid_transition"


def test_assign_requires_approved_beekeeper(client, make_user, customer, admin_user, book):
    appointment_id = book(customer)
    url = f"/api/admin/appointments/{appointment_id}/assign"
    pending_beekeeper = make_user("beekeeper", is_approved=False)

    assert client.patch(url, json={"beekeeper_id": pending_beekeeper["_id"]}, headers=admin_user["headers"]).status_code == 400
    assert client.patch(url, json={"beekeeper_id": customer["_id"]}, headers=admin_user["headers"]).status_code == 400
    assert client.patch(url, json={"beekeeper_id": pending_beekeeper["_id"]}, headers=customer["headers"]).status_code == 403


def test_assign_only_from_pending(client, customer, beekeeper, other_beekeeper, admin_user, book):
    appointment_id = book(customer)
    url = f"/api/admin/appointments/{appointment_id}/assign"
    assert client.patch(url, json={"beekeeper_id": beekeeper["_id"]}, headers=admin_user["headers"]).status_code == 200
    res = client.patch(url, json={"beekeeper_id": other_beekeeper["_id"]}, headers=admin_user["headers"])
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_transition"


def test_listing_is_role_scoped(client, customer, other_customer, beekeeper, admin_user, book):
    early = book(customer, date="2024-05-01")
    late = book(customer, date="2024-08-01")
    theirs = book(other_customer)
    client.patch(f"/api/admin/appointments/{early}/assign", json={"beekeeper_id": beekeeper["_id"]}, headers=admin_user["headers"])

    mine = client.get("/api/appointments", headers=customer["headers"]).json()
    assert [a["_id"] for a in mine] == [late, early]

    assigned = client.get("/api/appointments", headers=beekeeper["headers"]).json()
    assert [a["_id"] for a in assigned] == [early]
    assert assigned[0]["customer"]["email"] == customer["email"]

    everything = client.get("/api/admin/appointments", headers=admin_user["headers"]).json()
    assert {a["_id"] for a in everything} == {early, late, theirs}
    by_id = {a["_id"]: a for a in everything}
    assert by_id[early]["beekeeper"]["name"] == beekeeper["name"]
    assert by_id[late]["beekeeper"] is None
