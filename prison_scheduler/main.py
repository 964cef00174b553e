from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from prison_scheduler.db import get_db
from prison_scheduler.domain import ScheduleAssignment, ScheduleIssue, ShiftWindow
from prison_scheduler.eligibility import department_from_position
from prison_scheduler.locations import ConfigError, SchedulerConfig
from prison_scheduler.models import LeaveRequest, Schedule, StaffRecord, utcnow
from prison_scheduler.reconcile import ReconcileResult, reconcile_cross_shift
from prison_scheduler.scheduler import GenerationResult, generate_auto_schedule, generate_both_shifts
from prison_scheduler.store import PersistenceError, ScheduleStore, to_assignment

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="Prison Staff Scheduler")

ShiftName = Literal["day", "night"]
LeaveType = Literal["Annual Leave", "Sick Leave", "Emergency Leave", "Personal Leave", "Maternity Leave"]
LeaveStatus = Literal["Pending", "Approved", "Rejected", "Cancelled"]
ScheduleType = Literal["Security", "Medical", "Rehabilitation", "Work", "Visitation", "Maintenance", "Education", "Recreation"]
Priority = Literal["High", "Medium", "Low"]
ScheduleStatus = Literal["Scheduled", "In Progress", "Completed", "Cancelled", "Postponed"]

class _DateLock:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


_DATE_LOCKS: dict[date, _DateLock] = {}
_DATE_LOCKS_GUARD = threading.Lock()


@contextmanager
def date_lock(day: date):
    """Generation and reconciliation for one date must not interleave.

    The entry for a date is dropped once nobody holds or waits on it.
    """
    with _DATE_LOCKS_GUARD:
        entry = _DATE_LOCKS.setdefault(day, _DateLock())
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _DATE_LOCKS_GUARD:
            entry.holders -= 1
            if entry.holders == 0:
                del _DATE_LOCKS[day]


def load_config() -> SchedulerConfig:
    try:
        return SchedulerConfig.from_env()
    except ConfigError as exc:
        logger.error("Scheduler configuration is invalid: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Invalid scheduler configuration: {exc}")


class StaffIn(BaseModel):
    name: str
    email: str
    role: str = "staff"
    department: str | None = None
    position: str | None = None
    is_active: bool = True


class StaffPatch(BaseModel):
    name: str | None = None
    department: str | None = None
    position: str | None = None
    is_active: bool | None = None


class StaffOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department: str | None = None
    position: str | None = None
    is_active: bool

    @classmethod
    def from_record(cls, record: StaffRecord) -> "StaffOut":
        return cls(
            id=record.id,
            name=record.name,
            email=record.email,
            role=record.role,
            department=record.department,
            position=record.position,
            is_active=record.is_active,
        )


class LeaveIn(BaseModel):
    staff_id: int
    leave_type: LeaveType = "Annual Leave"
    start_date: date
    end_date: date
    reason: str = ""
    status: LeaveStatus = "Pending"

    @model_validator(mode="after")
    def validate_range(self) -> LeaveIn:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LeavePatch(BaseModel):
    status: LeaveStatus


class LeaveOut(BaseModel):
    id: int
    staff_id: int
    leave_type: str
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: str

    @classmethod
    def from_record(cls, record: LeaveRequest) -> "LeaveOut":
        return cls(
            id=record.id,
            staff_id=record.staff_id,
            leave_type=record.leave_type,
            start_date=record.start_date,
            end_date=record.end_date,
            total_days=record.total_days,
            reason=record.reason,
            status=record.status,
        )


class AssignmentOut(BaseModel):
    id: int | None = None
    date: str
    shift: ShiftName
    location: str
    title: str
    type: str
    start_time: str
    end_time: str
    assigned_staff_ids: list[int]
    staff_names: list[str] = Field(default_factory=list)
    priority: str
    status: str
    is_auto_scheduled: bool
    needs_attention: bool = False
    description: str | None = None
    notes: str | None = None
    created_by: str | None = None

    @classmethod
    def from_assignment(cls, a: ScheduleAssignment) -> "AssignmentOut":
        return cls(
            id=a.id,
            date=a.date.isoformat(),
            shift=a.shift,
            location=a.location,
            title=a.title,
            type=a.type,
            start_time=a.start_time,
            end_time=a.end_time,
            assigned_staff_ids=list(a.assigned_staff_ids),
            staff_names=list(a.staff_names),
            priority=a.priority,
            status=a.status,
            is_auto_scheduled=a.is_auto_scheduled,
            needs_attention=a.needs_attention,
            description=a.description,
            notes=a.notes,
            created_by=a.created_by,
        )


class IssueOut(BaseModel):
    date: str
    shift: ShiftName | None = None
    location: str | None = None
    type: Literal[
        "no_eligible_staff",
        "no_available_staff",
        "capacity_reached",
        "persistence_failure",
        "reconciliation_dead_end",
    ]
    detail: str

    @classmethod
    def from_issue(cls, issue: ScheduleIssue) -> "IssueOut":
        return cls(date=issue.date.isoformat(), shift=issue.shift, location=issue.location, type=issue.type, detail=issue.detail)


class GenerateRequest(BaseModel):
    date: date
    shift: ShiftName
    created_by: str | None = None


class DailyGenerateRequest(BaseModel):
    date: date
    created_by: str | None = None


class ReconcileRequest(BaseModel):
    date: date


class GenerateResponse(BaseModel):
    date: str
    shift: ShiftName
    count: int
    deleted: int
    assignments: list[AssignmentOut]
    issues: list[IssueOut]


class ReconcileOut(BaseModel):
    date: str
    changed: int
    trimmed: list[AssignmentOut]
    replaced: list[AssignmentOut]
    needs_attention: list[AssignmentOut]
    issues: list[IssueOut]


class DailyGenerateResponse(BaseModel):
    date: str
    count: int
    day: GenerateResponse
    night: GenerateResponse
    reconciliation: ReconcileOut


class ManualScheduleIn(BaseModel):
    date: date
    shift: ShiftName = "day"
    location: str
    start_time: str
    end_time: str
    assigned_staff_ids: list[int] = Field(min_length=1)
    title: str | None = None
    type: ScheduleType | None = None
    priority: Priority = "Medium"
    status: ScheduleStatus = "Scheduled"
    description: str | None = None
    notes: str | None = None
    created_by: str | None = None


class StaffScheduleCounts(BaseModel):
    completed: int = 0
    upcoming: int = 0
    pending: int = 0


class StaffScheduleOut(BaseModel):
    staff_id: int
    count: int
    counts: StaffScheduleCounts
    schedules: list[AssignmentOut]


def serialize_generation(result: GenerationResult) -> GenerateResponse:
    return GenerateResponse(
        date=result.date.isoformat(),
        shift=result.shift,
        count=len(result.assignments),
        deleted=result.deleted,
        assignments=[AssignmentOut.from_assignment(a) for a in result.assignments],
        issues=[IssueOut.from_issue(i) for i in result.issues],
    )


def serialize_reconciliation(result: ReconcileResult) -> ReconcileOut:
    return ReconcileOut(
        date=result.date.isoformat(),
        changed=result.changed,
        trimmed=[AssignmentOut.from_assignment(a) for a in result.trimmed],
        replaced=[AssignmentOut.from_assignment(a) for a in result.replaced],
        needs_attention=[AssignmentOut.from_assignment(a) for a in result.needs_attention],
        issues=[IssueOut.from_issue(i) for i in result.issues],
    )


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_valid_email(email: str) -> str:
    normalized = normalize_email(email)
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid email is required")
    return normalized


def get_staff_or_404(db: Session, staff_id: int) -> StaffRecord:
    record = db.get(StaffRecord, staff_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return record


def generation_failed(db: Session, exc: SQLAlchemyError) -> HTTPException:
    db.rollback()
    logger.exception("Schedule generation aborted by a database error: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Schedule store unavailable; retry the whole generation",
    )


def classify_for_staff(assignment: ScheduleAssignment, now: datetime) -> Literal["completed", "upcoming", "pending"]:
    if assignment.status == "Completed":
        return "completed"
    if assignment.status in ("Cancelled", "Postponed"):
        return "pending"
    _, end_minutes = ShiftWindow(assignment.start_time, assignment.end_time).minutes()
    ends_at = datetime.combine(assignment.date, datetime.min.time()) + timedelta(minutes=end_minutes)
    if ends_at < now:
        return "completed"
    return "upcoming"


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}


@app.get("/api/staff", response_model=list[StaffOut])
def list_staff(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
) -> list[StaffOut]:
    stmt = select(StaffRecord).order_by(StaffRecord.id)
    if not include_inactive:
        stmt = stmt.where(StaffRecord.is_active.is_(True))
    return [StaffOut.from_record(r) for r in db.scalars(stmt).all()]


@app.post("/api/staff", response_model=StaffOut, status_code=status.HTTP_201_CREATED)
def create_staff(payload: StaffIn, db: Session = Depends(get_db)) -> StaffOut:
    email = ensure_valid_email(payload.email)
    existing = db.scalar(select(StaffRecord).where(StaffRecord.email == email))
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Staff member already exists")
    department = payload.department
    if not department and payload.position:
        department = department_from_position(payload.position)
    record = StaffRecord(
        name=payload.name.strip(),
        email=email,
        role=payload.role,
        department=department,
        position=payload.position,
        is_active=payload.is_active,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return StaffOut.from_record(record)


@app.patch("/api/staff/{staff_id}", response_model=StaffOut)
def patch_staff(staff_id: int, payload: StaffPatch, db: Session = Depends(get_db)) -> StaffOut:
    record = get_staff_or_404(db, staff_id)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    for key, value in updates.items():
        setattr(record, key, value)
    db.commit()
    db.refresh(record)
    return StaffOut.from_record(record)


@app.get("/api/staff/{staff_id}/schedule", response_model=StaffScheduleOut)
def staff_schedule(
    staff_id: int,
    day: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
) -> StaffScheduleOut:
    record = get_staff_or_404(db, staff_id)
    stmt = (
        select(Schedule)
        .options(selectinload(Schedule.assigned_staff))
        .where(Schedule.assigned_staff.any(StaffRecord.id == record.id))
        .order_by(Schedule.date, Schedule.start_time, Schedule.id)
    )
    if day is not None:
        stmt = stmt.where(Schedule.date == day)
    assignments = [to_assignment(row) for row in db.scalars(stmt).all()]

    now = datetime.now()
    counts = StaffScheduleCounts()
    for assignment in assignments:
        bucket = classify_for_staff(assignment, now)
        setattr(counts, bucket, getattr(counts, bucket) + 1)
    return StaffScheduleOut(
        staff_id=record.id,
        count=len(assignments),
        counts=counts,
        schedules=[AssignmentOut.from_assignment(a) for a in assignments],
    )


@app.get("/api/leave", response_model=list[LeaveOut])
def list_leave(
    staff_id: int | None = None,
    leave_status: LeaveStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[LeaveOut]:
    stmt = select(LeaveRequest).order_by(LeaveRequest.submitted_at.desc(), LeaveRequest.id.desc())
    if staff_id is not None:
        stmt = stmt.where(LeaveRequest.staff_id == staff_id)
    if leave_status is not None:
        stmt = stmt.where(LeaveRequest.status == leave_status)
    return [LeaveOut.from_record(r) for r in db.scalars(stmt).all()]


@app.post("/api/leave", response_model=LeaveOut, status_code=status.HTTP_201_CREATED)
def create_leave(payload: LeaveIn, db: Session = Depends(get_db)) -> LeaveOut:
    get_staff_or_404(db, payload.staff_id)
    record = LeaveRequest(
        staff_id=payload.staff_id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        status=payload.status,
    )
    if payload.status != "Pending":
        record.decided_at = utcnow()
    db.add(record)
    db.commit()
    db.refresh(record)
    return LeaveOut.from_record(record)


@app.patch("/api/leave/{leave_id}", response_model=LeaveOut)
def patch_leave(leave_id: int, payload: LeavePatch, db: Session = Depends(get_db)) -> LeaveOut:
    record = db.get(LeaveRequest, leave_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave request not found")
    if record.status in ("Rejected", "Cancelled") and payload.status == "Approved":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"A {record.status.lower()} request cannot be approved")
    record.status = payload.status
    record.decided_at = utcnow() if payload.status != "Pending" else None
    db.commit()
    db.refresh(record)
    return LeaveOut.from_record(record)


@app.get("/api/schedules", response_model=list[AssignmentOut])
def list_schedules(
    day: date = Query(alias="date"),
    shift: ShiftName | None = None,
    location: str | None = None,
    db: Session = Depends(get_db),
) -> list[AssignmentOut]:
    store = ScheduleStore(db)
    return [AssignmentOut.from_assignment(a) for a in store.find_assignments(day, shift, location)]


@app.post("/api/schedules", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
def create_schedule(payload: ManualScheduleIn, db: Session = Depends(get_db)) -> AssignmentOut:
    config = load_config()
    assignment = ScheduleAssignment(
        location=payload.location,
        shift=payload.shift,
        date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        assigned_staff_ids=payload.assigned_staff_ids,
        title=payload.title or payload.location,
        type=payload.type or config.rule_for(payload.location).schedule_type,
        priority=payload.priority,
        status=payload.status,
        is_auto_scheduled=False,
        description=payload.description,
        notes=payload.notes,
        created_by=payload.created_by,
    )
    try:
        saved = ScheduleStore(db).save_assignment(assignment)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return AssignmentOut.from_assignment(saved)


@app.delete("/api/schedules/{schedule_id}")
def delete_schedule(schedule_id: int, db: Session = Depends(get_db)) -> dict[str, bool]:
    row = db.get(Schedule, schedule_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    db.delete(row)
    db.commit()
    return {"ok": True}


@app.post("/api/schedules/auto", response_model=GenerateResponse)
def auto_schedule(payload: GenerateRequest, db: Session = Depends(get_db)) -> GenerateResponse:
    store = ScheduleStore(db)
    config = load_config()
    with date_lock(payload.date):
        try:
            result = generate_auto_schedule(store, payload.date, payload.shift, payload.created_by, config)
            reconcile_cross_shift(store, payload.date, config)
        except SQLAlchemyError as exc:
            raise generation_failed(db, exc)
    if payload.shift == "night":
        # Reconciliation may have trimmed what was just generated.
        result.assignments = [a for a in store.find_assignments(payload.date, "night") if a.is_auto_scheduled]
    return serialize_generation(result)


@app.post("/api/schedules/auto/both", response_model=DailyGenerateResponse)
def auto_schedule_both(payload: DailyGenerateRequest, db: Session = Depends(get_db)) -> DailyGenerateResponse:
    store = ScheduleStore(db)
    config = load_config()
    with date_lock(payload.date):
        try:
            result = generate_both_shifts(store, payload.date, payload.created_by, config)
        except SQLAlchemyError as exc:
            raise generation_failed(db, exc)
    return DailyGenerateResponse(
        date=payload.date.isoformat(),
        count=len(result.assignments),
        day=serialize_generation(result.day),
        night=serialize_generation(result.night),
        reconciliation=serialize_reconciliation(result.reconciliation),
    )


@app.post("/api/schedules/reconcile", response_model=ReconcileOut)
def reconcile_schedules(payload: ReconcileRequest, db: Session = Depends(get_db)) -> ReconcileOut:
    store = ScheduleStore(db)
    config = load_config()
    with date_lock(payload.date):
        try:
            result = reconcile_cross_shift(store, payload.date, config)
        except SQLAlchemyError as exc:
            raise generation_failed(db, exc)
    return serialize_reconciliation(result)
