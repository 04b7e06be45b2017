from __future__ import annotations

from io import BytesIO

from lms.core.extensions import db
from lms.core.models import Customer, EntityStatus, Property


def _create_person(client) -> dict:
    response = client.post(
        "/api/v1/customers",
        json={
            "customer_type": "PERSON",
            "details": {"first_name": "Hamda", "father_name": "Yusuf", "grandfather_name": "Farah"},
        },
    )
    assert response.status_code == 201
    return response.get_json()


def test_login_rejects_bad_credentials_and_inactive_users(client, login):
    response = client.post("/auth/login", json={"email": "admin@lms.local", "password": "wrong"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_credentials"

    response = login("former_approver")
    assert response.status_code == 403

    response = login("inputter")
    assert response.status_code == 200
    assert response.get_json()["user"]["role"] == "INPUTTER"


def test_api_requires_authentication(client):
    response = client.get("/api/v1/notifications")
    assert response.status_code == 401
    assert response.get_json()["category"] == "auth"


def test_submit_review_and_reject_over_http(app, client, login):
    login("inputter")
    created = _create_person(client)
    assert created["status"] == "DRAFT"
    assert created["display_name"] == "Hamda Yusuf Farah"

    response = client.post(f"/api/v1/customer/{created['id']}/submit")
    assert response.status_code == 200
    assert response.get_json()["status"] == "SUBMITTED"

    login("approver")
    queue = client.get("/api/v1/review-queue").get_json()
    assert created["reference_id"] in [item["reference_id"] for item in queue["items"]]
    assert queue["counts"]["customers"] == 2

    response = client.post(f"/api/v1/customer/{created['id']}/reject", json={"feedback": ""})
    assert response.status_code == 400
    assert response.get_json()["category"] == "validation"

    response = client.post(f"/api/v1/customer/{created['id']}/reject", json={"feedback": "Missing ID number"})
    assert response.status_code == 200
    assert response.get_json()["rejection_feedback"] == "Missing ID number"

    login("inputter")
    inbox = client.get("/api/v1/notifications?filter=unread").get_json()
    assert inbox["unread"] == 1
    assert inbox["items"][0]["title"] == "Customer rejected"

    response = client.post(f"/api/v1/notifications/{inbox['items'][0]['id']}/read")
    assert response.status_code == 200
    assert response.get_json()["is_read"] is True
    assert client.get("/api/v1/notifications/unread-count").get_json() == {"unread": 0}

    activity = client.get(f"/api/v1/customer/{created['id']}/activity").get_json()["items"]
    assert [entry["action"] for entry in activity] == ["CREATED", "SUBMITTED", "REJECTED"]
    assert activity[-1]["metadata"]["feedback"] == "Missing ID number"
    assert [entry["performed_by_name"] for entry in activity] == ["Ifrah Inputter", "Ifrah Inputter", "Abdi Approver"]


def test_error_bodies_carry_category(app, client, login, users):
    login("approver")
    draft = Customer.query.filter_by(status=EntityStatus.DRAFT).first()

    response = client.post(f"/api/v1/customer/{draft.id}/approve")
    assert response.status_code == 409
    assert response.get_json() == {
        "error": "invalid_state",
        "message": response.get_json()["message"],
        "category": "invalid_state",
    }

    response = client.post("/api/v1/customer/999999/approve")
    assert response.status_code == 404
    assert response.get_json()["category"] == "not_found"

    response = client.post(f"/api/v1/land/{draft.id}/approve")
    assert response.status_code == 400

    response = client.get("/api/v1/review-queue?view=stale")
    assert response.status_code == 400


def test_review_queue_is_reviewer_only(client, login):
    login("viewer")
    response = client.get("/api/v1/review-queue")
    assert response.status_code == 403
    assert response.get_json()["category"] == "permission"

    login("inputter")
    assert client.get("/api/v1/review-queue").status_code == 403

    login("admin")
    response = client.get("/api/v1/review-queue?view=overdue&limit=10")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["view"] == "overdue"
    assert [item["category_label"] for item in payload["items"]] == ["BUSINESS"]
    assert payload["items"][0]["is_overdue"] is True


def test_property_photo_archive_and_delete_over_http(app, client, login):
    login("inputter")
    response = client.post(
        "/api/v1/properties",
        json={
            "property_type": "LAND",
            "parcel_number": "PCL-HTTP-1",
            "district": "Ahmed Dhagah",
            "details": {"parcel_area": "410", "has_property_wall": "yes"},
        },
    )
    assert response.status_code == 201
    record = response.get_json()
    assert record["reference_id"].startswith("PRP-")

    response = client.post(
        f"/api/v1/property/{record['id']}/photos",
        data={"file": (BytesIO(b"\x89PNG fake"), "plot.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    assert response.get_json()["file_name"] == "plot.png"

    response = client.post(f"/api/v1/property/{record['id']}/archive")
    assert response.status_code == 403

    login("approver")
    response = client.post(f"/api/v1/property/{record['id']}/archive")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ARCHIVED"
    response = client.post(f"/api/v1/property/{record['id']}/unarchive")
    assert response.get_json()["status"] == "DRAFT"

    login("inputter")
    response = client.delete(f"/api/v1/property/{record['id']}")
    assert response.status_code == 204
    assert db.session.get(Property, record["id"]) is None


def test_mark_all_read_endpoint(client, login):
    login("inputter")
    created = _create_person(client)
    client.post(f"/api/v1/customer/{created['id']}/submit")

    login("approver")
    assert client.get("/api/v1/notifications/unread-count").get_json() == {"unread": 1}
    assert client.post("/api/v1/notifications/read-all").get_json() == {"updated": 1}
    assert client.post("/api/v1/notifications/read-all").get_json() == {"updated": 0}


def test_review_queue_cli_lists_pending_records(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["review-queue"])
    assert result.exit_code == 0
    assert "Berbera Trading Co" in result.output
    assert "BUSINESS" in result.output

    result = runner.invoke(args=["review-queue", "--view", "customers"])
    assert "LAND" not in result.output


def test_reviewer_opens_customer_detail(client, login):
    business = Customer.query.filter_by(status=EntityStatus.SUBMITTED).one()

    login("approver")
    response = client.get(f"/api/v1/customer/{business.id}")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["reference_id"] == business.reference_id
    assert payload["category_label"] == "BUSINESS"
    assert payload["detail"]["business_name"] == "Berbera Trading Co"
    assert "customer_id" not in payload["detail"]
    assert "photos" not in payload


def test_reviewer_opens_property_detail_with_photos(client, login, make_property):
    record = make_property()

    login("inputter")
    response = client.post(
        f"/api/v1/property/{record.id}/photos",
        data={"file": (BytesIO(b"\x89PNG fake"), "facade.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 201

    login("admin")
    response = client.get(f"/api/v1/property/{record.id}")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["parcel_number"] == record.parcel_number
    assert payload["photo_count"] == 1
    assert [photo["file_name"] for photo in payload["photos"]] == ["facade.png"]
    assert payload["detail"]["number_of_floors"] == 3
    assert payload["detail"]["road_name"] == "26 June Road"


def test_entity_detail_is_reviewer_only_and_404s(client, login):
    business = Customer.query.filter_by(status=EntityStatus.SUBMITTED).one()

    login("inputter")
    response = client.get(f"/api/v1/customer/{business.id}")
    assert response.status_code == 403
    assert response.get_json()["category"] == "permission"

    login("approver")
    response = client.get("/api/v1/customer/999999")
    assert response.status_code == 404
    assert response.get_json()["category"] == "not_found"


def test_review_queue_endpoint_pages_the_merged_list(client, login):
    login("approver")
    response = client.get("/api/v1/review-queue?limit=1&page=2")
    assert response.status_code == 200
    payload = response.get_json()
    assert [item["entity_type"] for item in payload["items"]] == ["PROPERTY"]
    assert payload["meta"] == {"page": 2, "limit": 1, "total": 2, "total_pages": 2}
    assert payload["counts"]["all"] == 2

    payload = client.get("/api/v1/review-queue?view=customers").get_json()
    assert payload["meta"] == {"page": 1, "limit": 50, "total": 1, "total_pages": 1}

    assert client.get("/api/v1/review-queue?page=0").status_code == 400


def test_notifications_endpoint_pages_with_meta(client, login):
    login("inputter")
    for _ in range(3):
        created = _create_person(client)
        client.post(f"/api/v1/customer/{created['id']}/submit")

    login("approver")
    payload = client.get("/api/v1/notifications?limit=2&page=2").get_json()
    assert len(payload["items"]) == 1
    assert payload["meta"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
    assert payload["unread"] == 3

    payload = client.get("/api/v1/notifications?filter=read").get_json()
    assert payload["items"] == []
    assert payload["meta"] == {"page": 1, "limit": 50, "total": 0, "total_pages": 0}

    response = client.get("/api/v1/notifications?page=0")
    assert response.status_code == 400
    assert response.get_json()["category"] == "validation"
