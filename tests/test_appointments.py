"""Tests for booking, status changes, settlement and rescheduling of appointments."""
from __future__ import annotations

from datetime import date, time
from decimal import Decimal

from barbershop.extensions import db
from barbershop.models import Appointment, AppointmentService, Barber, ScheduleBlock


def _book(client, shop, when="2025-01-06T14:00:00", **extra):
    payload = {
        "client_id": shop["client_id"],
        "barber_id": shop["barber_id"],
        "service_ids": [shop["haircut_id"]],
        "appointment_datetime": when,
    }
    payload.update(extra)
    return client.post("/appointments", json=payload)


def test_book_single_appointment(client, shop) -> None:
    response = _book(client, shop, note="  fade on the sides ")

    assert response.status_code == 201
    body = response.get_json()
    [appointment] = body["appointments"]
    assert body["recurrence_group_id"] is None
    assert appointment["status"] == "scheduled"
    assert appointment["total_price_cents"] == 3000
    assert appointment["duration_minutes"] == 30
    assert appointment["note"] == "fade on the sides"
    assert appointment["services"][0]["commission_rate_applied"] == 0.4


def test_book_captures_chemical_rate_and_sums_durations(client, shop) -> None:
    response = _book(client, shop, service_ids=[shop["haircut_id"], shop["coloring_id"]])

    assert response.status_code == 201
    [appointment] = response.get_json()["appointments"]
    assert appointment["total_price_cents"] == 11000
    assert appointment["duration_minutes"] == 90
    rates = {line["service_id"]: line["commission_rate_applied"] for line in appointment["services"]}
    assert rates == {shop["haircut_id"]: 0.4, shop["coloring_id"]: 0.5}


def test_overlapping_booking_returns_conflicts(client, shop) -> None:
    first = _book(client, shop).get_json()["appointments"][0]

    response = _book(client, shop, when="2025-01-06T14:15:00")

    assert response.status_code == 409
    body = response.get_json()
    assert body["error"] == "schedule_conflict"
    assert body["conflicts"][0]["date"] == "2025-01-06"
    assert body["conflicts"][0]["conflicts"][0]["id"] == first["id"]


def test_overlap_can_be_confirmed(client, shop) -> None:
    _book(client, shop)

    response = _book(client, shop, when="2025-01-06T14:15:00", allow_overlap=True)

    assert response.status_code == 201


def test_back_to_back_bookings_do_not_conflict(client, shop) -> None:
    _book(client, shop)

    response = _book(client, shop, when="2025-01-06T14:30:00")

    assert response.status_code == 201


def test_recurring_booking_shares_one_group(app, client, shop) -> None:
    response = _book(client, shop, recurrence={"type": "weekly", "occurrences": 4})

    assert response.status_code == 201
    body = response.get_json()
    group_id = body["recurrence_group_id"]
    assert group_id
    assert [a["appointment_datetime"] for a in body["appointments"]] == [
        "2025-01-06T14:00:00",
        "2025-01-13T14:00:00",
        "2025-01-20T14:00:00",
        "2025-01-27T14:00:00",
    ]
    with app.app_context():
        assert Appointment.query.filter_by(recurrence_group_id=group_id).count() == 4


def test_recurring_booking_checks_every_date(app, client, shop) -> None:
    _book(client, shop, when="2025-01-20T14:00:00")

    response = _book(client, shop, recurrence={"type": "weekly", "occurrences": 4})

    assert response.status_code == 409
    assert [c["date"] for c in response.get_json()["conflicts"]] == ["2025-01-20"]
    with app.app_context():
        assert Appointment.query.count() == 1


def test_booking_over_a_block_is_rejected(app, client, shop) -> None:
    with app.app_context():
        db.session.add(ScheduleBlock(barber_id=shop["barber_id"], block_date=date(2025, 1, 6),
                                     start_time=time(12, 0), end_time=time(13, 0), reason="Lunch"))
        db.session.commit()

    response = _book(client, shop, when="2025-01-06T12:30:00", allow_overlap=True)

    assert response.status_code == 409
    body = response.get_json()
    assert body["error"] == "blocked_time"
    assert body["blocks"][0]["reason"] == "Lunch"


def test_booking_requires_fields(client, shop) -> None:
    response = client.post("/appointments", json={"client_id": shop["client_id"]})

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "invalid_payload"
    assert set(body["fields"]) == {"barber_id", "service_ids", "appointment_datetime"}


def test_booking_unknown_service(client, shop) -> None:
    response = _book(client, shop, service_ids=[999])

    assert response.status_code == 404
    assert response.get_json()["service_ids"] == [999]


def test_booking_invalid_datetime(client, shop) -> None:
    response = _book(client, shop, when="next monday")

    assert response.status_code == 400


def test_conflict_check_endpoint(client, shop) -> None:
    _book(client, shop)

    busy = client.post("/appointments/conflicts", json={
        "barber_id": shop["barber_id"],
        "appointment_datetime": "2025-01-06T14:15:00",
        "service_ids": [shop["haircut_id"]],
    })
    free = client.post("/appointments/conflicts", json={
        "barber_id": shop["barber_id"],
        "appointment_datetime": "2025-01-06T15:00:00",
        "duration_minutes": 45,
    })

    assert busy.status_code == 200
    assert busy.get_json()["has_conflicts"] is True
    assert free.get_json() == {"conflicts": [], "blocks": [], "has_conflicts": False}


def test_status_transitions(client, shop) -> None:
    appointment_id = _book(client, shop).get_json()["appointments"][0]["id"]

    response = client.put(f"/appointments/{appointment_id}/status",
                          json={"status": "completed", "payment_method": "pix"})
    assert response.status_code == 200
    assert response.get_json()["appointment"]["status"] == "completed"
    assert response.get_json()["appointment"]["payment_method"] == "pix"

    response = client.put(f"/appointments/{appointment_id}/status", json={"status": "cancelled"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_transition"


def test_unknown_status_is_rejected(client, shop) -> None:
    appointment_id = _book(client, shop).get_json()["appointments"][0]["id"]

    response = client.put(f"/appointments/{appointment_id}/status", json={"status": "finished"})

    assert response.status_code == 400


def test_settle_records_final_amount(client, shop) -> None:
    appointment_id = _book(client, shop).get_json()["appointments"][0]["id"]

    response = client.put(f"/appointments/{appointment_id}/settle",
                          json={"final_amount": "25.50", "payment_method": "money"})

    assert response.status_code == 200
    appointment = response.get_json()["appointment"]
    assert appointment["final_amount_cents"] == 2550
    assert appointment["total_price_cents"] == 3000
    assert appointment["status"] == "completed"


def test_settle_rejects_negative_amount(client, shop) -> None:
    appointment_id = _book(client, shop).get_json()["appointments"][0]["id"]

    response = client.put(f"/appointments/{appointment_id}/settle", json={"final_amount": -1})

    assert response.status_code == 400


def test_reschedule_reports_conflicts_and_excludes_itself(client, shop) -> None:
    moving = _book(client, shop).get_json()["appointments"][0]["id"]
    _book(client, shop, when="2025-01-06T16:00:00")

    nudged = client.put(f"/appointments/{moving}/reschedule", json={"appointment_datetime": "2025-01-06T14:10:00"})
    clash = client.put(f"/appointments/{moving}/reschedule", json={"appointment_datetime": "2025-01-06T16:15:00"})

    assert nudged.status_code == 200
    assert nudged.get_json()["appointment"]["appointment_datetime"] == "2025-01-06T14:10:00"
    assert clash.status_code == 409


def test_complete_day_marks_scheduled_appointments(app, client, shop) -> None:
    _book(client, shop, when="2025-01-06T09:00:00")
    _book(client, shop, when="2025-01-06T11:00:00")
    _book(client, shop, when="2025-01-07T11:00:00")

    response = client.post("/appointments/complete-day", json={"date": "2025-01-06"})

    assert response.status_code == 200
    assert response.get_json()["completed"] == 2
    with app.app_context():
        assert Appointment.query.filter_by(status="scheduled").count() == 1


def test_delete_appointment_removes_service_lines(app, client, shop) -> None:
    appointment_id = _book(client, shop).get_json()["appointments"][0]["id"]

    response = client.delete(f"/appointments/{appointment_id}")

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Appointment, appointment_id) is None
        assert AppointmentService.query.count() == 0


def test_delete_missing_appointment(client) -> None:
    response = client.delete("/appointments/999")

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_delete_series_requires_admin(app, client, anonymous_client, shop, auth_headers) -> None:
    group_id = _book(client, shop, recurrence={"type": "weekly", "occurrences": 3}).get_json()["recurrence_group_id"]

    assert anonymous_client.delete(f"/appointments/series/{group_id}").status_code == 401
    barber = auth_headers("barber", barber_id=shop["barber_id"])
    assert client.delete(f"/appointments/series/{group_id}", headers=barber).status_code == 403

    response = client.delete(f"/appointments/series/{group_id}", headers=auth_headers("admin"))

    assert response.status_code == 200
    assert response.get_json()["deleted"] == 3
    with app.app_context():
        assert Appointment.query.count() == 0
        assert AppointmentService.query.count() == 0
    assert client.get(f"/appointments/series/{group_id}").status_code == 404


def test_backfill_groups_weekly_bookings(client, shop, auth_headers) -> None:
    for day in ("06", "13", "20", "27"):
        _book(client, shop, when=f"2025-01-{day}T14:00:00")

    response = client.post("/appointments/recurrence/backfill", json={"since": "2025-01-01T00:00:00"},
                           headers=auth_headers("admin"))

    assert response.status_code == 200
    body = response.get_json()
    assert body["grouped"] == 4
    assert body["groups_created"] == 1

    again = client.post("/appointments/recurrence/backfill", json={"since": "2025-01-01T00:00:00"},
                        headers=auth_headers("admin"))
    assert again.get_json()["grouped"] == 0


def test_barber_token_only_sees_own_appointments(app, client, shop, auth_headers) -> None:
    _book(client, shop)
    with app.app_context():
        other = Barber(name="Otto", commission_rate_service=Decimal("0.3"))
        db.session.add(other)
        db.session.commit()
        other_id = other.barber_id

    own = client.get("/appointments?start=2025-01-01&end=2025-02-01",
                     headers=auth_headers("barber", barber_id=shop["barber_id"]))
    foreign = client.get(f"/appointments?start=2025-01-01&end=2025-02-01&barber_id={shop['barber_id']}",
                         headers=auth_headers("barber", barber_id=other_id))

    assert len(own.get_json()["appointments"]) == 1
    assert foreign.get_json()["appointments"] == []


def test_conflict_check_rejects_zero_duration(client, shop) -> None:
    response = client.post("/appointments/conflicts", json={
        "barber_id": shop["barber_id"],
        "appointment_datetime": "2025-01-06T15:00:00",
        "duration_minutes": 0,
    })

    assert response.status_code == 400
    assert "duration_minutes" in response.get_json()["message"]


def test_conflict_check_validates_service_ids(client, shop) -> None:
    not_a_list = client.post("/appointments/conflicts", json={
        "barber_id": shop["barber_id"],
        "appointment_datetime": "2025-01-06T15:00:00",
        "service_ids": "1,2",
    })
    bad_id = client.post("/appointments/conflicts", json={
        "barber_id": shop["barber_id"],
        "appointment_datetime": "2025-01-06T15:00:00",
        "service_ids": ["haircut"],
    })

    assert not_a_list.status_code == 400
    assert bad_id.status_code == 400
    assert bad_id.get_json()["error"] == "invalid_payload"
