from __future__ import annotations
from datetime import date

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_user_id
from payroll_api.common.http import ok, fail, paged
from payroll_api.common.paging import page_limit, parse_date, parse_decimal, parse_int
from payroll_api.extensions import db
from payroll_api.models.salary import SalaryStructure
from payroll_api.services import deductions, rate_table, salary_resolver
from payroll_api.services.money import as_float
from payroll_api.services.salary_service import STRUCTURE_FIELDS, FLAG_FIELDS, revise_structure

bp = Blueprint("salary_structures", __name__, url_prefix="/api/v1/salary-structures")

PAYMENT_MODES = ("bank", "cash", "cheque")


def _row(s: SalaryStructure):
    out = {
        "id": s.id,
        "employee_id": s.employee_id,
        "effective_from": s.effective_from.isoformat() if s.effective_from else None,
        "effective_to": s.effective_to.isoformat() if s.effective_to else None,
        "payment_mode": s.payment_mode,
        "created_by": s.created_by,
    }
    for name in STRUCTURE_FIELDS:
        out[name] = as_float(getattr(s, name))
    for name in FLAG_FIELDS:
        out[name] = bool(getattr(s, name))
    return out


@bp.post("")
@requires_perms("payroll.salary.write")
def create_revision():
    """Record a salary revision. Body: {"employee_id", "effective_from", "ctc", ...}."""
    j = request.get_json(silent=True) or {}
    emp_id = parse_int(j.get("employee_id"))
    eff = parse_date(j.get("effective_from"))
    if emp_id is None or eff is None:
        return fail("employee_id and effective_from (YYYY-MM-DD) are required", 422)

    values = {}
    errors = {}
    for name in STRUCTURE_FIELDS:
        if j.get(name) is None:
            continue
        v = parse_decimal(j[name])
        if v is None:
            errors[name] = "must be a number"
        values[name] = v
    if values.get("ctc") is None and "ctc" not in errors:
        errors["ctc"] = "required"
    for name in FLAG_FIELDS:
        if name in j:
            values[name] = bool(j[name])
    if j.get("payment_mode"):
        mode = str(j["payment_mode"]).lower()
        if mode not in PAYMENT_MODES:
            errors["payment_mode"] = f"one of {', '.join(PAYMENT_MODES)}"
        values["payment_mode"] = mode
    if errors:
        return fail("Validation failed", 422, errors=errors)

    s = revise_structure(emp_id, eff, values, user_id=current_user_id())
    return ok(_row(s), 201)


@bp.get("")
@requires_perms("payroll.salary.read")
def list_structures():
    q = SalaryStructure.query
    if request.args.get("employee_id"):
        emp_id = parse_int(request.args["employee_id"])
        if emp_id is None:
            return fail("employee_id must be integer", 422)
        q = q.filter(SalaryStructure.employee_id == emp_id)
    q = q.order_by(SalaryStructure.employee_id.asc(), SalaryStructure.effective_from.desc())
    page, size = page_limit()
    total = q.count()
    rows = q.offset((page-1)*size).limit(size).all()
    return paged([_row(s) for s in rows], page, size, total)


@bp.get("/<int:structure_id>/preview")
@requires_perms("payroll.salary.read")
def preview_structure(structure_id: int):
    """Monthly earnings and statutory deductions under the rate set in force on ?on= (default today)."""
    s = db.get_or_404(SalaryStructure, structure_id)
    on = request.args.get("on")
    d = parse_date(on) if on else date.today()
    if d is None:
        return fail("on must be YYYY-MM-DD", 422)

    rs = rate_table.resolve(d)
    earnings = salary_resolver.resolve(s, rs)
    ded = deductions.compute(earnings, s, rs)
    return ok({
        "structure": _row(s),
        "rate_set": rs.to_dict(),
        "earnings": earnings.to_dict(),
        "deductions": ded.to_dict(),
        "net_before_recoveries": as_float(earnings.gross - ded.employee_total),
    })
