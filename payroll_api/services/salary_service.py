from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional

from flask import abort

from payroll_api.common.errors import APIError, ConfigurationError
from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.models.salary import SalaryStructure
from payroll_api.services import rate_table, salary_resolver
from payroll_api.services.money import dec
from payroll_api.services.payroll_common import latest_consumed_period

log = logging.getLogger(__name__)

STRUCTURE_FIELDS = (
    "ctc", "basic_pct", "hra_pct", "conveyance", "telephone", "medical",
    "other_allowances", "tds_pct",
)
FLAG_FIELDS = ("includes_pf", "includes_esi", "ctc_includes_employer_contributions")


def _rate_set_or_none(on: date):
    try:
        return rate_table.resolve(on)
    except ConfigurationError:
        return None


def revise_structure(employee_id: int, effective_from: date, values: Dict[str, Any],
                     user_id: Optional[int] = None) -> SalaryStructure:
    """Record a salary revision effective from `effective_from`.

    Revisions are prospective: a date inside a period already consumed by a
    live pay run is rejected, and the previous open structure is closed the
    day before.
    """
    emp = db.session.get(Employee, employee_id)
    if emp is None:
        abort(404, description="Employee not found")

    consumed = latest_consumed_period()
    if consumed and (effective_from.year, effective_from.month) <= consumed:
        raise APIError(
            f"Period {consumed[0]}-{consumed[1]:02d} is already consumed by a pay run; "
            "revisions apply prospectively",
            code="PERIOD_CONSUMED", status_code=409,
            payload={"effective_from": effective_from.isoformat()},
        )

    later = (SalaryStructure.query
             .filter(SalaryStructure.employee_id == employee_id)
             .filter(SalaryStructure.effective_from >= effective_from)
             .first())
    if later is not None:
        raise APIError("A structure effective on or after this date already exists",
                       code="REVISION_CONFLICT", status_code=409,
                       payload={"structure_id": later.id})

    s = SalaryStructure(employee_id=employee_id, effective_from=effective_from, created_by=user_id)
    for name in STRUCTURE_FIELDS:
        if values.get(name) is not None:
            setattr(s, name, dec(values[name]))
    for name in FLAG_FIELDS:
        if name in values:
            setattr(s, name, bool(values[name]))
    if values.get("payment_mode"):
        s.payment_mode = str(values["payment_mode"]).lower()
    for name, default in (("basic_pct", dec(50)), ("hra_pct", dec(40)), ("tds_pct", dec(0)),
                          ("conveyance", dec(0)), ("telephone", dec(0)), ("medical", dec(0)),
                          ("other_allowances", dec(0))):
        if getattr(s, name) is None:
            setattr(s, name, default)
    if s.includes_pf is None:
        s.includes_pf = True
    if s.includes_esi is None:
        s.includes_esi = False
    if s.ctc_includes_employer_contributions is None:
        s.ctc_includes_employer_contributions = False

    # reject inconsistent structures up front, not at pay-run time
    salary_resolver.resolve(s, _rate_set_or_none(effective_from))

    prev = (SalaryStructure.query
            .filter(SalaryStructure.employee_id == employee_id)
            .filter(SalaryStructure.effective_from < effective_from)
            .filter(db.or_(SalaryStructure.effective_to.is_(None),
                           SalaryStructure.effective_to >= effective_from))
            .all())
    for p in prev:
        p.effective_to = effective_from - timedelta(days=1)

    db.session.add(s)
    db.session.commit()
    log.info("salary revision for employee %s effective %s (ctc=%s)", employee_id, effective_from, s.ctc)
    return s
