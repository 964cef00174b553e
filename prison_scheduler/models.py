from __future__ import annotations

import datetime as dt
import re
from datetime import date, datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from prison_scheduler.db import Base
from prison_scheduler.domain import (
    LEAVE_STATUSES,
    LEAVE_TYPES,
    PRIORITIES,
    SCHEDULE_STATUSES,
    SCHEDULE_TYPES,
    SHIFTS,
)
from prison_scheduler.locations import LOCATION_RULES

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


schedule_staff = Table(
    "schedule_staff",
    Base.metadata,
    Column("schedule_id", ForeignKey("schedules.id", ondelete="CASCADE"), primary_key=True),
    Column("staff_id", ForeignKey("staff.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class StaffRecord(Base):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="staff")
    department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    position: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    leave_requests = relationship("LeaveRequest", back_populates="staff", cascade="all, delete-orphan")


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected', 'Cancelled')",
            name="ck_leave_requests_status",
        ),
        Index("ix_leave_requests_staff_status", "staff_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    leave_type: Mapped[str] = mapped_column(String(40), nullable=False, default="Annual Leave")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    staff = relationship("StaffRecord", back_populates="leave_requests")

    @validates("leave_type")
    def _check_leave_type(self, _key, value):
        if value not in LEAVE_TYPES:
            raise ValueError(f"Unknown leave type {value!r}")
        return value

    @validates("status")
    def _check_status(self, _key, value):
        if value not in LEAVE_STATUSES:
            raise ValueError(f"Unknown leave status {value!r}")
        return value

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("shift IN ('day', 'night')", name="ck_schedules_shift"),
        Index("ix_schedules_date_shift", "date", "shift"),
        Index("ix_schedules_location_date", "location", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False, default="Security")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False, default="day")
    location: Mapped[str] = mapped_column(String(80), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="Medium")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Scheduled")
    is_auto_scheduled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_attention: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    assigned_staff = relationship("StaffRecord", secondary=schedule_staff, order_by="StaffRecord.id")

    @validates("start_time", "end_time")
    def _check_time(self, key, value):
        if not value or not TIME_PATTERN.match(value):
            raise ValueError(f"{key} must be HH:MM, got {value!r}")
        return value

    @validates("location")
    def _check_location(self, _key, value):
        if value not in LOCATION_RULES:
            raise ValueError(f"Unknown location {value!r}")
        return value

    @validates("shift")
    def _check_shift(self, _key, value):
        if value not in SHIFTS:
            raise ValueError(f"Unknown shift {value!r}")
        return value

    @validates("type")
    def _check_type(self, _key, value):
        if value not in SCHEDULE_TYPES:
            raise ValueError(f"Unknown schedule type {value!r}")
        return value

    @validates("priority")
    def _check_priority(self, _key, value):
        if value not in PRIORITIES:
            raise ValueError(f"Unknown priority {value!r}")
        return value

    @validates("status")
    def _check_status(self, _key, value):
        if value not in SCHEDULE_STATUSES:
            raise ValueError(f"Unknown schedule status {value!r}")
        return value


def check_time_order(start_time: str, end_time: str) -> None:
    """End must follow start unless the window runs overnight (starts 21:00+ or ends by 09:00)."""
    start_h, start_m = (int(p) for p in start_time.split(":"))
    end_h, end_m = (int(p) for p in end_time.split(":"))
    overnight = start_h >= 21 or end_h <= 9
    if overnight:
        if start_h < 21 and end_h > 9:
            raise ValueError("End time must be after start time")
        return
    if (end_h, end_m) <= (start_h, start_m):
        raise ValueError("End time must be after start time")
