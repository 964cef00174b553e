from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

import prison_scheduler.main as main
from prison_scheduler.main import app

client = TestClient(app)


def add_staff(name, email, position, department=None):
    body = {"name": name, "email": email, "position": position}
    if department:
        body["department"] = department
    r = client.post("/api/staff", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def seed_roster():
    staff = [add_staff("Control 0", "control0@prison.test", "Prison Control Room Officer", "Control")]
    staff += [add_staff(f"Nurse {i}", f"nurse{i}@prison.test", "Staff Nurse") for i in range(2)]
    staff += [add_staff(f"Officer {i}", f"officer{i}@prison.test", "Correctional Officer") for i in range(7)]
    return staff


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_create_staff_infers_department_and_rejects_duplicates():
    nurse = add_staff("Jo Bloggs", "Jo@Prison.test", "Staff Nurse")
    assert nurse["department"] == "Medical"
    assert nurse["email"] == "jo@prison.test"

    dup = client.post("/api/staff", json={"name": "Jo Again", "email": "jo@prison.test"})
    assert dup.status_code == 409
    bad = client.post("/api/staff", json={"name": "No Mail", "email": "nobody"})
    assert bad.status_code == 400


def test_patch_staff():
    officer = add_staff("Sam", "sam@prison.test", "Correctional Officer")
    r = client.patch(f"/api/staff/{officer['id']}", json={"is_active": False})
    assert r.status_code == 200
    assert r.json()["is_active"] is False
    assert client.get("/api/staff").json() == []
    assert len(client.get("/api/staff", params={"include_inactive": True}).json()) == 1

    assert client.patch(f"/api/staff/{officer['id']}", json={}).status_code == 400
    assert client.patch("/api/staff/999", json={"name": "Ghost"}).status_code == 404


def test_leave_lifecycle():
    officer = add_staff("Sam", "sam@prison.test", "Correctional Officer")
    backwards = client.post(
        "/api/leave",
        json={"staff_id": officer["id"], "start_date": "2026-03-05", "end_date": "2026-03-01"},
    )
    assert backwards.status_code == 422

    created = client.post(
        "/api/leave",
        json={"staff_id": officer["id"], "leave_type": "Sick Leave", "start_date": "2026-03-01", "end_date": "2026-03-03"},
    )
    assert created.status_code == 201
    leave = created.json()
    assert leave["status"] == "Pending"
    assert leave["total_days"] == 3

    rejected = client.patch(f"/api/leave/{leave['id']}", json={"status": "Rejected"})
    assert rejected.json()["status"] == "Rejected"
    assert client.patch(f"/api/leave/{leave['id']}", json={"status": "Approved"}).status_code == 400
    assert client.get("/api/leave", params={"status": "Rejected"}).json()[0]["id"] == leave["id"]
    assert client.patch("/api/leave/999", json={"status": "Approved"}).status_code == 404


def test_auto_schedule_day_then_list_and_delete():
    seed_roster()
    r = client.post("/api/schedules/auto", json={"date": "2026-03-02", "shift": "day", "created_by": "admin@prison.test"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["count"] == 10
    assert body["deleted"] == 0
    assert [(i["type"], i["location"]) for i in body["issues"]] == [("no_available_staff", "Staff Room")]

    listed = client.get("/api/schedules", params={"date": "2026-03-02", "shift": "day"}).json()
    assert len(listed) == 10
    gate = client.get("/api/schedules", params={"date": "2026-03-02", "location": "Main Gate"}).json()
    assert len(gate) == 1
    assert gate[0]["is_auto_scheduled"] is True

    assert client.delete(f"/api/schedules/{gate[0]['id']}").json() == {"ok": True}
    assert client.delete(f"/api/schedules/{gate[0]['id']}").status_code == 404

    again = client.post("/api/schedules/auto", json={"date": "2026-03-02", "shift": "day"}).json()
    assert again["deleted"] == 9


def test_auto_schedule_both_shifts():
    seed_roster()
    r = client.post("/api/schedules/auto/both", json={"date": "2026-03-02"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["day"]["count"] == 10
    # Everyone is on days, so every night post is reported instead of filled.
    assert body["night"]["count"] == 0
    assert {i["location"] for i in body["night"]["issues"]} == {"Control Room", "Medical Room", "Block A - Cells", "Block B - Cells", "Main Gate"}
    assert body["count"] == 10


def test_manual_schedule_validation():
    officer = add_staff("Sam", "sam@prison.test", "Correctional Officer")
    ok = client.post(
        "/api/schedules",
        json={"date": "2026-03-02", "location": "Library", "start_time": "10:00", "end_time": "12:00", "assigned_staff_ids": [officer["id"]]},
    )
    assert ok.status_code == 201, ok.text
    assert ok.json()["is_auto_scheduled"] is False
    assert ok.json()["title"] == "Library"

    unknown_location = client.post(
        "/api/schedules",
        json={"date": "2026-03-02", "location": "Rooftop", "start_time": "10:00", "end_time": "12:00", "assigned_staff_ids": [officer["id"]]},
    )
    assert unknown_location.status_code == 400
    backwards = client.post(
        "/api/schedules",
        json={"date": "2026-03-02", "location": "Library", "start_time": "15:00", "end_time": "12:00", "assigned_staff_ids": [officer["id"]]},
    )
    assert backwards.status_code == 400
    unknown_staff = client.post(
        "/api/schedules",
        json={"date": "2026-03-02", "location": "Library", "start_time": "10:00", "end_time": "12:00", "assigned_staff_ids": [999]},
    )
    assert unknown_staff.status_code == 400
    nobody = client.post(
        "/api/schedules",
        json={"date": "2026-03-02", "location": "Library", "start_time": "10:00", "end_time": "12:00", "assigned_staff_ids": []},
    )
    assert nobody.status_code == 422


def test_reconcile_endpoint_reports_dead_end():
    ids = [s["id"] for s in seed_roster()]
    night = client.post("/api/schedules/auto", json={"date": "2026-03-02", "shift": "night"}).json()
    assert night["count"] == 5
    on_nights = {sid for a in night["assignments"] for sid in a["assigned_staff_ids"]}
    gate = next(a for a in night["assignments"] if a["location"] == "Main Gate")

    # Book every spare officer and the gate officer onto days.
    day_staff = [sid for sid in ids if sid not in on_nights] + gate["assigned_staff_ids"]
    r = client.post(
        "/api/schedules",
        json={"date": "2026-03-02", "location": "Workshop", "start_time": "09:00", "end_time": "17:00", "assigned_staff_ids": day_staff},
    )
    assert r.status_code == 201, r.text

    result = client.post("/api/schedules/reconcile", json={"date": "2026-03-02"}).json()
    assert [a["location"] for a in result["needs_attention"]] == ["Main Gate"]
    assert result["issues"][0]["type"] == "reconciliation_dead_end"
    assert client.post("/api/schedules/reconcile", json={"date": "2026-03-02"}).json()["changed"] == 0


def test_staff_schedule_counts():
    officer = add_staff("Sam", "sam@prison.test", "Correctional Officer")
    for day, state in (("2020-01-06", "Scheduled"), ("2099-01-05", "Scheduled"), ("2099-01-06", "Cancelled")):
        r = client.post(
            "/api/schedules",
            json={
                "date": day,
                "location": "Library",
                "start_time": "09:00",
                "end_time": "17:00",
                "assigned_staff_ids": [officer["id"]],
                "status": state,
            },
        )
        assert r.status_code == 201, r.text

    body = client.get(f"/api/staff/{officer['id']}/schedule").json()
    assert body["count"] == 3
    assert body["counts"] == {"completed": 1, "upcoming": 1, "pending": 1}
    one_day = client.get(f"/api/staff/{officer['id']}/schedule", params={"date": "2099-01-05"}).json()
    assert one_day["count"] == 1
    assert client.get("/api/staff/999/schedule").status_code == 404


def test_database_failure_during_generation_returns_503(monkeypatch):
    seed_roster()

    def broken_store(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(main, "generate_auto_schedule", broken_store)
    r = client.post("/api/schedules/auto", json={"date": "2026-03-02", "shift": "day"})
    assert r.status_code == 503
    assert "retry the whole generation" in r.json()["detail"]
    assert main._DATE_LOCKS == {}


def test_invalid_cap_setting_is_reported(monkeypatch):
    monkeypatch.setenv("MAX_SCHEDULES_PER_SHIFT", "lots")
    r = client.post("/api/schedules/auto", json={"date": "2026-03-02", "shift": "day"})
    assert r.status_code == 500
    assert "MAX_SCHEDULES_PER_SHIFT" in r.json()["detail"]


def test_date_locks_are_released():
    day = date(2026, 3, 2)
    with main.date_lock(day):
        assert day in main._DATE_LOCKS
    assert day not in main._DATE_LOCKS

    seed_roster()
    client.post("/api/schedules/auto/both", json={"date": "2026-03-02"})
    client.post("/api/schedules/reconcile", json={"date": "2026-03-02"})
    assert main._DATE_LOCKS == {}


def test_both_shifts_reports_night_rows_after_reconciliation():
    officers = [add_staff(f"Officer {i}", f"officer{i}@prison.test", "Correctional Officer")["id"] for i in range(12)]
    for shift, start, end in (("day", "09:00", "17:00"), ("night", "21:00", "09:00")):
        r = client.post(
            "/api/schedules",
            json={"date": "2026-03-02", "shift": shift, "location": "Isolation", "start_time": start, "end_time": end, "assigned_staff_ids": [officers[0]]},
        )
        assert r.status_code == 201, r.text

    body = client.post("/api/schedules/auto/both", json={"date": "2026-03-02"}).json()
    assert body["reconciliation"]["changed"] == 1

    stored = client.get("/api/schedules", params={"date": "2026-03-02", "shift": "night"}).json()
    stored_auto = [(a["id"], a["assigned_staff_ids"]) for a in stored if a["is_auto_scheduled"]]
    assert [(a["id"], a["assigned_staff_ids"]) for a in body["night"]["assignments"]] == stored_auto

    day_staff = {sid for a in client.get("/api/schedules", params={"date": "2026-03-02", "shift": "day"}).json() for sid in a["assigned_staff_ids"]}
    night_staff = {sid for a in stored for sid in a["assigned_staff_ids"]}
    assert not day_staff & night_staff
