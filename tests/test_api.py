from datetime import date, time
from uuid import uuid4

import pytest
import pytest_asyncio

from clinic_scheduler.core.config import settings
from clinic_scheduler.schemas.appointment import Unavailable
from clinic_scheduler.services.booking_service import BookingArbiter
from clinic_scheduler.services.slots import SlotService

from conftest import add_appointment, add_leave, add_schedule

API = "/api/v1"
TUESDAY = date(2025, 6, 3)


@pytest_asyncio.fixture
async def working_doctor(session, doctor):
    await add_schedule(session, doctor, 2, break_start=time(13, 0), break_end=time(14, 0))
    return doctor


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_requests_without_a_token_are_refused(client, doctor):
    response = await client.get(f"{API}/doctors/{doctor.id}/slots", params={"date": "2025-06-03"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_and_list_doctors(auth_client, tenant):
    payload = {
        "name": "Dr. Mehta",
        "specialty": "Dermatology",
        "consult_duration_minutes": 15,
        "username": "dr.mehta",
        "password": "pw-12345",
    }
    created = await auth_client.post(f"{API}/doctors/{tenant.id}/doctors", json=payload)
    duplicate = await auth_client.post(f"{API}/doctors/{tenant.id}/doctors", json=payload)
    listed = await auth_client.get(f"{API}/doctors/{tenant.id}/doctors")

    assert created.status_code == 200
    assert created.json()["consult_duration_minutes"] == 15
    assert created.json()["user_id"] is not None
    assert duplicate.status_code == 409
    assert [doc["name"] for doc in listed.json()] == ["Dr. Mehta"]


@pytest.mark.asyncio
async def test_create_doctor_for_unknown_clinic(auth_client):
    response = await auth_client.post(
        f"{API}/doctors/{uuid4()}/doctors",
        json={"name": "Dr. Nobody", "username": "nobody", "password": "pw"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_availability_endpoint(auth_client, working_doctor):
    response = await auth_client.get(f"{API}/doctors/{working_doctor.id}/availability", params={"date": "2025-06-03"})

    body = response.json()
    assert response.status_code == 200
    assert body["available"] is True
    assert body["windows"] == [
        {"start": "09:00:00", "end": "13:00:00"},
        {"start": "14:00:00", "end": "17:00:00"},
    ]


@pytest.mark.asyncio
async def test_slots_endpoint(auth_client, working_doctor):
    response = await auth_client.get(
        f"{API}/doctors/{working_doctor.id}/slots", params={"date": "2025-06-03", "granularity": 30}
    )

    body = response.json()
    assert response.status_code == 200
    assert len(body["slots"]) == 14
    assert body["slots"][0] == {"value": "09:00", "label": "9:00 AM"}
    assert body["slots"][-1] == {"value": "16:30", "label": "4:30 PM"}


@pytest.mark.asyncio
async def test_slots_on_leave(auth_client, session, working_doctor):
    await add_leave(session, working_doctor, TUESDAY)

    response = await auth_client.get(f"{API}/doctors/{working_doctor.id}/slots", params={"date": "2025-06-03"})

    assert response.json()["available"] is False
    assert response.json()["reason"] == "on leave"
    assert response.json()["slots"] == []


@pytest.mark.asyncio
async def test_slots_endpoint_defaults_granularity(auth_client, working_doctor, monkeypatch):
    calls = []
    day_slots = SlotService.day_slots

    async def recording_day_slots(self, doctor_id, on_date, granularity_minutes):
        calls.append(granularity_minutes)
        return await day_slots(self, doctor_id, on_date, granularity_minutes)

    monkeypatch.setattr(SlotService, "day_slots", recording_day_slots)

    response = await auth_client.get(f"{API}/doctors/{working_doctor.id}/slots", params={"date": "2025-06-03"})

    assert response.status_code == 200
    assert calls == [settings.DEFAULT_SLOT_GRANULARITY_MINUTES]
    assert response.json()["granularity_minutes"] == settings.DEFAULT_SLOT_GRANULARITY_MINUTES


@pytest.mark.asyncio
async def test_slots_reject_bad_granularity(auth_client, working_doctor):
    response = await auth_client.get(
        f"{API}/doctors/{working_doctor.id}/slots", params={"date": "2025-06-03", "granularity": 0}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_doctor_is_404(auth_client):
    response = await auth_client.get(f"{API}/doctors/{uuid4()}/availability", params={"date": "2025-06-03"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Doctor not found"


@pytest.mark.asyncio
async def test_broken_schedule_is_500(auth_client, session, doctor):
    await add_schedule(session, doctor, 2, start=None, end=None)

    response = await auth_client.get(f"{API}/doctors/{doctor.id}/availability", params={"date": "2025-06-03"})

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_schedule_roundtrip(auth_client, doctor):
    seeded = await auth_client.get(f"{API}/doctors/{doctor.id}/schedule")
    updated = await auth_client.put(
        f"{API}/doctors/{doctor.id}/schedule",
        json={"entries": [{"day_of_week": 2, "is_available": False}]},
    )
    invalid = await auth_client.put(
        f"{API}/doctors/{doctor.id}/schedule",
        json={"entries": [{"day_of_week": 2, "start_time": "17:00", "end_time": "09:00"}]},
    )
    availability = await auth_client.get(f"{API}/doctors/{doctor.id}/availability", params={"date": "2025-06-03"})

    assert len(seeded.json()) == 7
    assert updated.status_code == 200
    assert invalid.status_code == 422
    assert availability.json()["reason"] == "not a working day"


@pytest.mark.asyncio
async def test_leave_endpoints(auth_client, working_doctor):
    created = await auth_client.post(
        f"{API}/doctors/{working_doctor.id}/leaves",
        json={"leave_date": "2099-01-06", "leave_type": "half_day_evening", "reason": "Workshop"},
    )
    day_off = await auth_client.post(f"{API}/doctors/{working_doctor.id}/leaves/day-off", json={})
    listed = await auth_client.get(f"{API}/doctors/{working_doctor.id}/leaves")

    assert created.status_code == 200
    assert day_off.json()["leave_type"] == "full_day"
    assert len(listed.json()) == 2

    leave_id = created.json()["id"]
    deleted = await auth_client.delete(f"{API}/doctors/{working_doctor.id}/leaves/{leave_id}")
    missing = await auth_client.delete(f"{API}/doctors/{working_doctor.id}/leaves/{leave_id}")
    assert deleted.status_code == 204
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_invalid_leave_type_is_422(auth_client, doctor):
    response = await auth_client.post(
        f"{API}/doctors/{doctor.id}/leaves", json={"leave_date": "2099-01-06", "leave_type": "quarter_day"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_book_then_conflict(auth_client, working_doctor, patient):
    request = {
        "doctor_id": str(working_doctor.id),
        "patient_id": str(patient.id),
        "appointment_date": "2025-06-03",
        "appointment_time": "10:00",
        "duration_minutes": 30,
    }
    created = await auth_client.post(f"{API}/appointments", json=request)
    conflict = await auth_client.post(f"{API}/appointments", json=request)

    assert created.status_code == 201
    assert created.json()["status"] == "scheduled"
    assert conflict.status_code == 409
    assert conflict.json()["detail"] == {
        "reason": "slot taken",
        "detail": None,
        "conflicting_appointment_id": created.json()["id"],
    }


@pytest.mark.asyncio
async def test_book_outside_hours(auth_client, working_doctor, patient):
    response = await auth_client.post(
        f"{API}/appointments",
        json={
            "doctor_id": str(working_doctor.id),
            "patient_id": str(patient.id),
            "appointment_date": "2025-06-03",
            "appointment_time": "16:45",
        },
    )
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "outside working hours"


@pytest.mark.asyncio
async def test_booking_needs_a_patient(auth_client, working_doctor):
    response = await auth_client.post(
        f"{API}/appointments",
        json={"doctor_id": str(working_doctor.id), "appointment_date": "2025-06-03", "appointment_time": "10:00"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_check_endpoint(auth_client, session, working_doctor, patient):
    existing = await add_appointment(session, working_doctor, patient, TUESDAY, time(10, 0))
    slot = {"doctor_id": str(working_doctor.id), "appointment_date": "2025-06-03", "appointment_time": "10:00"}

    taken = await auth_client.post(f"{API}/appointments/check", json=slot)
    own = await auth_client.post(f"{API}/appointments/check", json=slot, params={"appointment_id": str(existing.id)})

    assert taken.json() == {
        "bookable": False,
        "reason": "slot taken",
        "detail": None,
        "conflicting_appointment_id": str(existing.id),
    }
    assert own.json()["bookable"] is True


@pytest.mark.asyncio
async def test_update_status_list_and_delete(auth_client, session, working_doctor, patient):
    visit = await add_appointment(session, working_doctor, patient, TUESDAY, time(10, 0))
    url = f"{API}/appointments/{visit.id}"

    moved = await auth_client.put(url, json={"appointment_time": "11:00"})
    confirmed = await auth_client.patch(f"{url}/status", json={"status": "confirmed"})
    backwards = await auth_client.patch(f"{url}/status", json={"status": "scheduled"})
    listed = await auth_client.get(
        f"{API}/appointments", params={"doctor_id": str(working_doctor.id), "date": "2025-06-03"}
    )
    fetched = await auth_client.get(url)
    deleted = await auth_client.delete(url)
    gone = await auth_client.get(url)

    assert moved.json()["appointment_time"] == "11:00:00"
    assert confirmed.json()["status"] == "confirmed"
    assert backwards.status_code == 409
    assert [item["id"] for item in listed.json()["appointments"]] == [str(visit.id)]
    assert fetched.status_code == 200
    assert deleted.status_code == 204
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_storage_outage_is_503(auth_client, working_doctor, patient, monkeypatch):
    async def down(self, *args, **kwargs):
        return Unavailable()

    monkeypatch.setattr(BookingArbiter, "attempt_book", down)

    response = await auth_client.post(
        f"{API}/appointments",
        json={
            "doctor_id": str(working_doctor.id),
            "patient_id": str(patient.id),
            "appointment_date": "2025-06-03",
            "appointment_time": "10:00",
        },
    )
    assert response.status_code == 503
