from datetime import datetime, timezone

import pytest
from fastapi import WebSocketDisconnect

from backend.core.security import get_password_hash

CHECK_IN_FORM = {
    "load_type": "outbound",
    "reference_number": "SO-550011",
    "carrier_name": "Blue Line Freight",
    "trailer_number": "TR-4410",
    "destination_city": "Columbus",
    "destination_state": "OH",
    "driver_name": "Sam Rivera",
    "driver_phone": "(317) 555-0142",
}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_driver_check_in_needs_no_login(client):
    response = client.post("/check-ins", json=CHECK_IN_FORM)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "pending"
    assert body["data"]["reference_number"] == "SO-550011"


def test_duplicate_driver_check_in_is_rejected(client):
    client.post("/check-ins", json=CHECK_IN_FORM)
    response = client.post("/check-ins", json=CHECK_IN_FORM)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_invalid_form_is_rejected(client):
    response = client.post("/check-ins", json={**CHECK_IN_FORM, "destination_state": "Ohio"})
    assert response.status_code == 422


@pytest.mark.parametrize("method, path", [
    ("get", "/check-ins"),
    ("get", "/docks"),
    ("get", "/appointments?day=2025-03-04"),
    ("get", "/reports/daily"),
])
def test_staff_endpoints_require_login(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 401


def test_list_check_ins(csr_client):
    csr_client.post("/check-ins", json=CHECK_IN_FORM)
    response = csr_client.get("/check-ins")
    assert response.status_code == 200
    assert response.json()["total"] == 1


def test_unknown_check_in_is_404(csr_client):
    response = csr_client.get("/check-ins/0123456789abcdef01234567")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_assign_dock_endpoint(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]

    response = csr_client.post("/docks/12/assign", json={"check_in_id": check_in_id, "appointment_time": "08:00"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "checked_in"
    assert body["data"]["dock_number"] == "12"
    assert body["data"]["appointment_time"] == "0800"
    assert body["warnings"] == []

    dock = csr_client.get("/docks/12").json()["dock"]
    assert dock["status"] == "in-use"


def test_double_booking_is_reported(csr_client):
    first = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]
    second = csr_client.post("/check-ins", json={**CHECK_IN_FORM, "reference_number": "SO-550012"}).json()["data"]["id"]

    csr_client.post("/docks/5/assign", json={"check_in_id": first})
    response = csr_client.post("/docks/5/assign", json={"check_in_id": second})

    assert response.status_code == 200
    assert len(response.json()["warnings"]) == 1
    summary = csr_client.get("/docks/summary").json()["summary"]
    assert summary["double_booked"] == 1


def test_assign_unknown_dock_is_400(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]
    response = csr_client.post("/docks/999/assign", json={"check_in_id": check_in_id})
    assert response.status_code == 400


def test_denying_checked_in_driver_is_409(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]
    csr_client.post("/docks/3/assign", json={"check_in_id": check_in_id})

    response = csr_client.post(f"/check-ins/{check_in_id}/deny", json={"reason": "No paperwork"})

    assert response.status_code == 409


def test_status_change_endpoint(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]

    missing_notes = csr_client.post(f"/check-ins/{check_in_id}/status", json={"status": "rejected"})
    response = csr_client.post(
        f"/check-ins/{check_in_id}/status", json={"status": "rejected", "notes": "Seal broken"},
    )

    assert missing_notes.status_code == 409
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "rejected"


def test_block_and_unblock_dock(csr_client):
    blocked = csr_client.put("/docks/Ramp/block", json={"reason": "Snow"})
    assert blocked.status_code == 200
    assert blocked.json()["block"]["blocked_by"] == "csr@example.com"

    docks = csr_client.get("/docks").json()["docks"]
    assert docks[0]["dock_number"] == "Ramp"
    assert docks[0]["status"] == "blocked"

    assert csr_client.delete("/docks/ramp/block").json()["removed"] is True


def test_dock_cycles_are_seeded_on_startup(csr_client):
    cycles = csr_client.get("/docks/cycles").json()["docks"]
    assert len(cycles) == 71
    assert all(c["cycle_status"] == "available" for c in cycles)


def test_claim_dock_conflict_is_409(csr_client):
    first = csr_client.post("/docks/7/claim", json={})
    second = csr_client.post("/docks/7/claim", json={})

    assert first.status_code == 200
    assert first.json()["dock"]["cycle_status"] == "assigned"
    assert second.status_code == 409

    assert csr_client.post("/docks/7/advance", json={}).json()["dock"]["cycle_status"] == "loading"
    assert csr_client.post("/docks/7/release").json()["dock"]["cycle_status"] == "available"


def test_appointment_upload_and_listing(csr_client):
    content = (
        "Apt. Start Date,Start Time,Sales Order,Delivery,Customer\n"
        "03/04/2025,08:00,SO100,,Acme\n"
        "03/04/2025,08:00,SO100,,Acme\n"
        "03/04/2025,09:00,,,Acme\n"
    ).encode("utf-8")

    response = csr_client.post(
        "/appointments/upload",
        files={"file": ("schedule.csv", content, "text/csv")},
    )

    assert response.status_code == 200
    assert response.json() == {
        "total": 3,
        "success": 1,
        "failed": 1,
        "skipped": 1,
        "errors": ["Row 3: Missing both Sales Order and Delivery"],
    }
    listing = csr_client.get("/appointments?day=2025-03-04").json()
    assert listing["total"] == 1
    assert listing["data"][0]["source"] == "excel"


def test_upload_rejects_unsupported_file(csr_client):
    response = csr_client.post(
        "/appointments/upload",
        files={"file": ("schedule.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 400


def test_manual_appointment_must_use_a_slot(csr_client):
    bad = csr_client.post("/appointments", json={
        "scheduled_date": "2025-03-04", "scheduled_time": "08:15", "sales_order": "SO1",
    })
    no_reference = csr_client.post("/appointments", json={
        "scheduled_date": "2025-03-04", "scheduled_time": "08:00",
    })
    good = csr_client.post("/appointments", json={
        "scheduled_date": "2025-03-04", "scheduled_time": "Work In", "delivery": "DL1",
    })

    assert bad.status_code == 422
    assert no_reference.status_code == 400
    assert good.status_code == 200
    assert good.json()["data"]["source"] == "manual"


def test_daily_report_endpoints(csr_client, insert_check_in):
    insert_check_in(
        appointment_time="0800", dock_number="12", status="checked_out",
        check_in_time=datetime(2025, 3, 4, 12, 50, tzinfo=timezone.utc),
        end_time=datetime(2025, 3, 4, 15, 10, tzinfo=timezone.utc),
    )

    report = csr_client.get("/reports/daily?day=2025-03-04").json()["report"]
    assert report["total"] == 1
    assert report["detention_minutes"] == 10

    response = csr_client.get("/reports/daily-log.csv?day=2025-03-04")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "daily-log-2025-03-04.csv" in response.headers["content-disposition"]
    assert response.text.splitlines()[1].startswith("07:50")


def test_sms_endpoint_reports_provider_failure(csr_client):
    response = csr_client.post("/notifications/sms", json={"phone_number": "+13175550142", "message": "hi"})
    assert response.status_code == 502
    assert response.json()["detail"] == "Twilio credentials not configured"


def test_login_sets_cookie(client, database):
    database.profiles.insert_one({
        "email": "csr@example.com",
        "hashed_password": get_password_hash("dockpass1"),
        "full_name": "Casey Smith",
        "mobile": "+13175550111",
        "role": "csr",
    })

    bad = client.post("/auth/login", json={"email": "csr@example.com", "password": "wrong"})
    good = client.post("/auth/login", json={"email": "csr@example.com", "password": "dockpass1"})

    assert bad.status_code == 401
    assert good.status_code == 200
    assert "access_token" in good.cookies
    assert good.json()["user"]["role"] == "csr"


def test_register_requires_admin(csr_client):
    response = csr_client.post("/auth/register", json={
        "email": "new@example.com", "password": "password1", "full_name": "New User", "mobile": "+13175550122",
    })
    assert response.status_code == 403


def test_websocket_receives_changes(client):
    with client.websocket_connect("/ws/changes?table=check_ins") as websocket:
        assert websocket.receive_json()["type"] == "subscribed"

        client.post("/check-ins", json=CHECK_IN_FORM)

        message = websocket.receive_json()
        assert message["type"] == "change"
        assert message["table"] == "check_ins"
        assert message["event"] == "insert"
        assert message["row"]["reference_number"] == "SO-550011"

        websocket.send_text("ping")
        assert websocket.receive_json()["type"] == "pong"


def test_websocket_rejects_unknown_event(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/changes?event=truncate"):
            pass


def test_edit_cannot_clear_required_fields(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]
    csr_client.post("/docks/5/assign", json={"check_in_id": check_in_id})

    response = csr_client.patch(f"/check-ins/{check_in_id}", json={"reference_number": None, "driver_name": None})

    assert response.status_code == 422
    assert csr_client.get("/check-ins").status_code == 200
    assert csr_client.get("/docks").status_code == 200
    assert csr_client.get("/reports/daily").status_code == 200
    stored = csr_client.get(f"/check-ins/{check_in_id}").json()["data"]
    assert stored["reference_number"] == "SO-550011"


def test_edit_applies_form_rules(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]

    bad = csr_client.patch(f"/check-ins/{check_in_id}", json={
        "reference_number": "x!", "destination_state": "Indiana", "driver_phone": "abc",
    })
    good = csr_client.patch(f"/check-ins/{check_in_id}", json={"destination_state": "in", "notes": "Reefer"})

    assert bad.status_code == 422
    assert good.status_code == 200
    assert good.json()["data"]["destination_state"] == "IN"
    assert good.json()["data"]["reference_number"] == "SO-550011"


def test_manual_check_in_onto_occupied_dock_warns(csr_client):
    check_in_id = csr_client.post("/check-ins", json=CHECK_IN_FORM).json()["data"]["id"]
    csr_client.post("/docks/5/assign", json={"check_in_id": check_in_id})

    response = csr_client.post("/check-ins/manual", json={
        **CHECK_IN_FORM, "reference_number": "SO-550099", "dock_number": "05",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["dock_number"] == "5"
    assert body["data"]["status"] == "checked_in"
    assert len(body["warnings"]) == 1
    assert csr_client.get("/docks/5").json()["dock"]["status"] == "double-booked"


def test_health_reports_open_check_ins(client):
    assert client.get("/health").json()["system"]["open_check_ins"] == 0
