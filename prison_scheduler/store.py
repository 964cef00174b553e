from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from prison_scheduler.domain import APPROVED, STAFF_ROLE, LeaveInterval, ScheduleAssignment, Shift, StaffMember
from prison_scheduler.models import LeaveRequest, Schedule, StaffRecord, check_time_order

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """One assignment could not be written; the rest of the batch is unaffected."""


def to_staff_member(record: StaffRecord) -> StaffMember:
    return StaffMember(
        id=record.id,
        name=record.name,
        email=record.email,
        role=record.role,
        department=record.department,
        position=record.position,
        is_active=record.is_active,
    )


def to_assignment(row: Schedule) -> ScheduleAssignment:
    return ScheduleAssignment(
        id=row.id,
        location=row.location,
        shift=row.shift,
        date=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        assigned_staff_ids=[s.id for s in row.assigned_staff],
        staff_names=[s.name for s in row.assigned_staff],
        title=row.title,
        type=row.type,
        priority=row.priority,
        status=row.status,
        is_auto_scheduled=row.is_auto_scheduled,
        description=row.description,
        notes=row.notes,
        created_by=row.created_by,
        needs_attention=row.needs_attention,
    )


class ScheduleStore:
    """Roster, leave and assignment access for the allocator, backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def list_active_staff(self) -> list[StaffMember]:
        records = self.db.scalars(
            select(StaffRecord)
            .where(StaffRecord.role == STAFF_ROLE, StaffRecord.is_active.is_(True))
            .order_by(StaffRecord.id)
        ).all()
        return [to_staff_member(r) for r in records]

    def list_approved_leave(self, start: date, end: date) -> list[LeaveInterval]:
        rows = self.db.scalars(
            select(LeaveRequest).where(
                LeaveRequest.status == APPROVED,
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
        ).all()
        return [LeaveInterval(r.staff_id, r.start_date, r.end_date, r.status) for r in rows]

    def _query(self, day: date, shift: Shift | None = None, location: str | None = None):
        stmt = select(Schedule).options(selectinload(Schedule.assigned_staff)).where(Schedule.date == day)
        if shift is not None:
            stmt = stmt.where(Schedule.shift == shift)
        if location is not None:
            stmt = stmt.where(Schedule.location == location)
        return stmt.order_by(Schedule.id)

    def find_assignments(self, day: date, shift: Shift | None = None, location: str | None = None) -> list[ScheduleAssignment]:
        rows = self.db.scalars(self._query(day, shift, location)).all()
        return [to_assignment(row) for row in rows]

    def delete_assignments(self, day: date, shift: Shift, auto_only: bool = True) -> int:
        stmt = self._query(day, shift)
        if auto_only:
            stmt = stmt.where(Schedule.is_auto_scheduled.is_(True))
        rows = self.db.scalars(stmt).all()
        for row in rows:
            self.db.delete(row)
        self.db.commit()
        if rows:
            logger.info("Deleted %d assignment(s) for %s %s shift (auto_only=%s)", len(rows), day.isoformat(), shift, auto_only)
        return len(rows)

    def save_assignment(self, assignment: ScheduleAssignment) -> ScheduleAssignment:
        try:
            check_time_order(assignment.start_time, assignment.end_time)
            row = Schedule(
                title=assignment.title,
                type=assignment.type,
                description=assignment.description,
                date=assignment.date,
                start_time=assignment.start_time,
                end_time=assignment.end_time,
                shift=assignment.shift,
                location=assignment.location,
                priority=assignment.priority,
                status=assignment.status,
                is_auto_scheduled=assignment.is_auto_scheduled,
                needs_attention=assignment.needs_attention,
                created_by=assignment.created_by,
                notes=assignment.notes,
            )
        except ValueError as exc:
            raise PersistenceError(str(exc)) from exc

        wanted = set(assignment.assigned_staff_ids)
        staff = self.db.scalars(select(StaffRecord).where(StaffRecord.id.in_(sorted(wanted)))).all() if wanted else []
        if len(staff) != len(wanted):
            missing = sorted(wanted - {s.id for s in staff})
            raise PersistenceError(f"Unknown staff id(s) {missing}")
        row.assigned_staff = list(staff)

        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise PersistenceError(str(exc.orig)) from exc
        self.db.refresh(row)
        return to_assignment(row)

    def update_assigned_staff(self, assignment_id: int, staff_ids: list[int], needs_attention: bool = False) -> ScheduleAssignment:
        row = self.db.get(Schedule, assignment_id)
        if row is None:
            raise LookupError(f"Schedule {assignment_id} not found")
        staff = self.db.scalars(select(StaffRecord).where(StaffRecord.id.in_(staff_ids))).all() if staff_ids else []
        row.assigned_staff = list(staff)
        row.needs_attention = needs_attention
        self.db.commit()
        self.db.refresh(row)
        return to_assignment(row)
