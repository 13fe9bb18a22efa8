from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.models.salary import SalaryStructure


@dataclass(frozen=True)
class RosterEntry:
    """Identity captured by value at generation time."""
    employee_id: int
    code: Optional[str]
    name: str
    department: Optional[str]
    designation: Optional[str]
    structure: Optional[SalaryStructure]


def structure_on(employee_id: int, on_date: date) -> Optional[SalaryStructure]:
    return (
        SalaryStructure.query
        .filter(SalaryStructure.employee_id == employee_id)
        .filter(SalaryStructure.effective_from <= on_date)
        .filter(db.or_(SalaryStructure.effective_to.is_(None), SalaryStructure.effective_to >= on_date))
        .order_by(SalaryStructure.effective_from.desc(), SalaryStructure.id.desc())
        .first()
    )


def active_roster(period_start: date, period_end: date) -> Iterator[RosterEntry]:
    """Active employees employed during the window, each with the structure effective on period_end."""
    q = (
        Employee.query
        .filter(Employee.status == "active")
        .filter(db.or_(Employee.doj.is_(None), Employee.doj <= period_end))
        .filter(db.or_(Employee.dol.is_(None), Employee.dol >= period_start))
        .order_by(Employee.id.asc())
    )
    for emp in q.all():
        yield RosterEntry(
            employee_id=emp.id,
            code=emp.code,
            name=emp.full_name,
            department=emp.department,
            designation=emp.designation,
            structure=structure_on(emp.id, period_end),
        )
