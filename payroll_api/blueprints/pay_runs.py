from __future__ import annotations
from typing import Any, Dict

from flask import Blueprint, Response, request, send_file

from payroll_api.common.auth import requires_perms, current_user_id
from payroll_api.common.http import ok, fail, paged
from payroll_api.common.paging import page_limit, parse_int, parse_month
from payroll_api.extensions import db
from payroll_api.models.payroll.pay_run import PayRun, PayRunItem, PAY_RUN_STATUSES
from payroll_api.services import pay_run_export
from payroll_api.services import pay_run_service as svc
from payroll_api.services.money import as_float

bp = Blueprint("pay_runs", __name__, url_prefix="/api/v1/pay-runs")


# ---------- row serializers ----------
def _iso(v):
    return v.isoformat() if v else None

def _row_run(r: PayRun) -> Dict[str, Any]:
    return {
        "id": r.id,
        "month": r.month,
        "year": r.year,
        "status": r.status,
        "rate_set_id": r.rate_set_id,
        "employee_count": r.employee_count,
        "total_gross": as_float(r.total_gross),
        "total_deductions": as_float(r.total_deductions),
        "total_net": as_float(r.total_net),
        "exclusions": r.exclusions or [],
        "generated_at": _iso(r.generated_at),
        "approved_at": _iso(r.approved_at),
        "processed_at": _iso(r.processed_at),
        "cancelled_at": _iso(r.cancelled_at),
        "created_by": r.created_by,
    }

def _row_item(x: PayRunItem) -> Dict[str, Any]:
    money = (
        "basic", "hra", "conveyance", "telephone", "medical", "special_allowance",
        "other_allowances", "gross", "lop_amount", "prorated_gross",
        "pf_employee", "pf_employer", "esi_employee", "esi_employer",
        "professional_tax", "tds", "advance_deduction", "loan_deduction",
        "total_deductions", "net_pay",
    )
    out = {
        "id": x.id,
        "pay_run_id": x.pay_run_id,
        "employee_id": x.employee_id,
        "employee_code": x.employee_code,
        "employee_name": x.employee_name,
        "department": x.department,
        "designation": x.designation,
        "payment_mode": x.payment_mode,
        "salary_structure_id": x.salary_structure_id,
        "total_working_days": x.total_working_days,
        "payable_days": x.payable_days,
        "lop_days": x.lop_days,
        "attendance_defaulted": bool(x.attendance_defaulted),
        "recoveries": x.recoveries or {},
    }
    for k in money:
        out[k] = as_float(getattr(x, k))
    return out


# ---------- routes ----------
@bp.post("")
@requires_perms("payroll.run.write")
def generate_run():
    """Generate the DRAFT pay run for a month. Body: {"month": 7 | "July", "year": 2025}."""
    j = request.get_json(silent=True) or {}
    month = parse_month(j.get("month"))
    year = parse_int(j.get("year"))
    if not (month and year):
        return fail("month (1..12 or name) and year are required", 422)

    r = svc.generate_pay_run(month, year, user_id=current_user_id())
    meta = {}
    if r.exclusions:
        meta["warning"] = f"{len(r.exclusions)} employee(s) excluded; see exclusions"
    return ok(_row_run(r), 201, **meta)

@bp.get("")
@requires_perms("payroll.run.read")
def list_runs():
    q = PayRun.query
    if request.args.get("year"):
        y = parse_int(request.args["year"])
        if y is None: return fail("year must be integer", 422)
        q = q.filter(PayRun.year == y)
    if request.args.get("month"):
        m = parse_month(request.args["month"])
        if m is None: return fail("month must be 1..12 or a month name", 422)
        q = q.filter(PayRun.month == m)
    if request.args.get("status"):
        st = request.args["status"].lower()
        if st not in PAY_RUN_STATUSES:
            return fail(f"status must be one of {', '.join(PAY_RUN_STATUSES)}", 422)
        q = q.filter(PayRun.status == st)

    q = q.order_by(PayRun.year.desc(), PayRun.month.desc(), PayRun.id.desc())
    page, size = page_limit()
    total = q.count()
    rows = q.offset((page-1)*size).limit(size).all()
    return paged([_row_run(x) for x in rows], page, size, total)

@bp.get("/<int:run_id>")
@requires_perms("payroll.run.read")
def get_run(run_id: int):
    r = db.get_or_404(PayRun, run_id)
    return ok(_row_run(r))

@bp.get("/period/<int:year>/<month>")
@requires_perms("payroll.run.read")
def get_run_for_period(year: int, month: str):
    m = parse_month(month)
    if m is None:
        return fail("month must be 1..12 or a month name", 422)
    r = svc.get_pay_run(m, year)
    return ok(_row_run(r))

@bp.get("/<int:run_id>/items")
@requires_perms("payroll.run.read")
def list_run_items(run_id: int):
    """List PayRunItem rows for the given run.
    Supports optional "employee_id" filter and pagination via page/size.
    """
    r = db.get_or_404(PayRun, run_id)
    q = PayRunItem.query.filter_by(pay_run_id=r.id)

    emp_q = (request.args.get("employee_id") or "").strip()
    if emp_q:
        emp_id = parse_int(emp_q)
        if emp_id is None:
            return fail("employee_id must be integer", 422)
        q = q.filter(PayRunItem.employee_id == emp_id)

    page, size = page_limit()
    total = q.count()
    rows = q.order_by(PayRunItem.id.asc()).offset((page-1)*size).limit(size).all()
    return paged([_row_item(x) for x in rows], page, size, total)

@bp.post("/<int:run_id>/approve")
@requires_perms("payroll.run.write")
def approve_run(run_id: int):
    return ok(_row_run(svc.approve_pay_run(run_id, user_id=current_user_id())))

@bp.post("/<int:run_id>/process")
@requires_perms("payroll.run.write")
def process_run(run_id: int):
    return ok(_row_run(svc.process_pay_run(run_id, user_id=current_user_id())))

@bp.post("/<int:run_id>/cancel")
@requires_perms("payroll.run.write")
def cancel_run(run_id: int):
    return ok(_row_run(svc.cancel_pay_run(run_id, user_id=current_user_id())))

@bp.get("/<int:run_id>/export")
@requires_perms("payroll.run.read")
def export_run(run_id: int):
    r = db.get_or_404(PayRun, run_id)
    fmt = (request.args.get("format") or "csv").lower()
    if fmt == "csv":
        body = pay_run_export.to_csv(r)
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={pay_run_export.export_filename(r, 'csv')}"},
        )
    if fmt == "xlsx":
        bio = pay_run_export.to_xlsx(r)
        return send_file(
            bio,
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name=pay_run_export.export_filename(r, "xlsx"),
        )
    return fail("format must be csv or xlsx", 422)
