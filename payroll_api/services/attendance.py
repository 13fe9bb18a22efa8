from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from payroll_api.common.errors import InconsistentAttendanceError
from payroll_api.models.attendance import AttendanceRecord

DEFAULT_WORKING_DAYS = 26


@dataclass(frozen=True)
class AttendanceOutcome:
    total_working_days: int
    payable_days: int
    loss_of_pay_days: int
    defaulted: bool = False

    @classmethod
    def full(cls, working_days: int = DEFAULT_WORKING_DAYS) -> "AttendanceOutcome":
        return cls(total_working_days=working_days, payable_days=working_days,
                   loss_of_pay_days=0, defaulted=True)

    @classmethod
    def from_record(cls, rec: AttendanceRecord) -> "AttendanceOutcome":
        total = rec.total_working_days or 0
        counts = (rec.present_days or 0, rec.absent_days or 0,
                  rec.paid_leave_days or 0, rec.unpaid_leave_days or 0)
        if total <= 0:
            raise InconsistentAttendanceError(
                "total_working_days must be > 0", payload={"attendance_id": rec.id})
        if any(c < 0 for c in counts):
            raise InconsistentAttendanceError(
                "attendance day counts must be >= 0", payload={"attendance_id": rec.id})
        if sum(counts) > total:
            raise InconsistentAttendanceError(
                "present + absent + leave days exceed total working days",
                payload={"attendance_id": rec.id, "total_working_days": total, "marked": sum(counts)},
            )
        return cls(total_working_days=total, payable_days=rec.payable_days,
                   loss_of_pay_days=rec.loss_of_pay_days)


def lookup(employee_id: int, month: int, year: int) -> Optional[AttendanceRecord]:
    return AttendanceRecord.query.filter_by(employee_id=employee_id, month=month, year=year).first()


def outcome_for(employee_id: int, month: int, year: int,
                default_working_days: int = DEFAULT_WORKING_DAYS) -> AttendanceOutcome:
    """Missing attendance counts as full attendance."""
    rec = lookup(employee_id, month, year)
    if rec is None:
        return AttendanceOutcome.full(default_working_days)
    return AttendanceOutcome.from_record(rec)
