import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from scheduler.engine import SlotAllocator

from conftest import FlakyStore


@pytest.fixture
def client(allocator):
    """Create a FastAPI TestClient around the in-memory allocator."""
    return TestClient(create_app(allocator))


def booking(time="09:00", service_type="Consulta", **extra):
    body = {
        "date": "2025-01-15",
        "time": time,
        "service_type": service_type,
        "patient_name": "Ana Pérez",
        "email": "ana@example.com",
        "phone": "1138151880",
    }
    body.update(extra)
    return body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_availability(client):
    response = client.get("/availability", params={"date": "2025-01-15", "service_type": "Consulta"})
    assert response.status_code == 200

    slots = response.json()
    assert [s["time"] for s in slots][:3] == ["09:00", "09:20", "09:40"]
    assert all(s["available"] for s in slots)


def test_availability_on_closed_day(client):
    response = client.get("/availability", params={"date": "2025-01-14", "service_type": "Consulta"})
    assert response.json() == []


def test_create_appointment(client):
    response = client.post("/appointments", json=booking(time="09:20", service_type="Consulta & PAP"))
    assert response.status_code == 201

    body = response.json()
    assert body["start_time"] == "09:20:00"
    assert body["end_time"] == "09:50:00"
    assert body["duration_minutes"] == 30
    assert body["status"] == "pending"
    assert "cancellation_token" not in body


def test_slot_taken_is_a_conflict(client):
    client.post("/appointments", json=booking())
    response = client.post("/appointments", json=booking(email="lucia@example.com"))

    assert response.status_code == 409
    assert response.json()["error_code"] == "SlotTaken"


@pytest.mark.parametrize("body,code", [
    (booking(time="09:10"), "MisalignedGrid"),
    (booking(time="08:00"), "OutsideWorkingHours"),
    (booking(date="2025-01-14"), "NotAWorkingDay"),
    (booking(time="09:20", service_type="Biopsia"), "MisalignedExtendedServiceStart"),
])
def test_validator_rejections(client, body, code):
    response = client.post("/appointments", json=body)
    assert response.status_code == 422
    assert response.json() == {"error_code": code, "message": response.json()["message"]}


def test_unknown_service_type(client):
    response = client.post("/appointments", json=booking(service_type="Masaje"))
    assert response.status_code == 400
    assert response.json()["error_code"] == "InvalidServiceType"


def test_malformed_patient_data(client):
    response = client.post("/appointments", json=booking(email="not-an-email"))
    assert response.status_code == 422


def test_get_and_reschedule(client):
    created = client.post("/appointments", json=booking()).json()

    assert client.get(f"/appointments/{created['id']}").json()["id"] == created["id"]

    response = client.patch(f"/appointments/{created['id']}", json={"date": "2025-01-15", "time": "10:00"})
    assert response.status_code == 200
    assert response.json()["start_time"] == "10:00:00"


def test_missing_appointment(client):
    response = client.get("/appointments/999")
    assert response.status_code == 404
    assert response.json()["error_code"] == "AppointmentNotFound"


def test_status_update(client):
    created = client.post("/appointments", json=booking()).json()

    response = client.patch(f"/appointments/{created['id']}/status", json={"status": "confirmed"})
    assert response.json()["status"] == "confirmed"

    client.patch(f"/appointments/{created['id']}/status", json={"status": "cancelled_by_professional"})
    response = client.patch(f"/appointments/{created['id']}/status", json={"status": "confirmed"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "InvalidStatusTransition"


def test_cancel_with_token(client, store):
    created = client.post("/appointments", json=booking()).json()
    token = store.get(created["id"]).cancellation_token

    response = client.post("/appointments/cancel", json={"token": token})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled_by_patient"

    again = client.post("/appointments/cancel", json={"token": token})
    assert again.status_code == 409
    assert again.json()["error_code"] == "AppointmentNotActive"


def test_schedule_config_roundtrip(client):
    config = client.get("/admin/schedule-config").json()
    assert config["work_days"] == ["wednesday"]

    config["work_days"] = ["Martes"]
    response = client.put("/admin/schedule-config", json=config)
    assert response.status_code == 200
    assert response.json()["work_days"] == ["tuesday"]

    slots = client.get("/availability", params={"date": "2025-01-14", "service_type": "Consulta"}).json()
    assert slots


def test_statistics(client):
    client.post("/appointments", json=booking())
    response = client.get("/admin/statistics", params={"year": 2025, "month": 1})

    assert response.status_code == 200
    assert response.json()["total_appointments"] == 1


def test_storage_outage_is_503(config_source, clock):
    allocator = SlotAllocator(FlakyStore(failures=100), config_source, clock=clock, sleep=lambda _: None)
    client = TestClient(create_app(allocator))

    response = client.post("/appointments", json=booking())
    assert response.status_code == 503
    assert response.json()["error_code"] == "StorageUnavailable"
