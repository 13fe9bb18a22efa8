from __future__ import annotations
from datetime import date

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_user_id
from payroll_api.common.http import ok, fail, paged
from payroll_api.common.paging import page_limit, parse_date, parse_decimal
from payroll_api.extensions import db
from payroll_api.models.payroll.rate_set import RateSetConfig
from payroll_api.services import rate_table
from payroll_api.services.rate_table import RateSet

bp = Blueprint("rate_sets", __name__, url_prefix="/api/v1/rate-sets")

NUMERIC_FIELDS = ("pf_rate", "pf_wage_ceiling", "esi_rate", "esi_employer_rate", "esi_wage_ceiling")


def _row(r: RateSetConfig):
    out = RateSet.from_model(r).to_dict()
    out["label"] = r.label
    out["created_at"] = r.created_at.isoformat() if r.created_at else None
    return out


@bp.post("")
@requires_perms("payroll.rates.write")
def create_rate_set():
    """
    Body:
      {"effective_from": "2025-04-01", "effective_to": null, "label": "FY25",
       "pf_rate": 12, "pf_wage_ceiling": 15000, "esi_rate": 0.75,
       "esi_employer_rate": 3.25, "esi_wage_ceiling": 21000,
       "pt_slabs": [{"min": 0, "max": 25000, "amount": 0}, {"min": 25000.01, "max": null, "amount": 200}]}
    """
    j = request.get_json(silent=True) or {}

    eff_from = parse_date(j.get("effective_from"))
    if not eff_from:
        return fail("effective_from (YYYY-MM-DD) is required", 422)
    eff_to = parse_date(j.get("effective_to")) if j.get("effective_to") else None
    if j.get("effective_to") and eff_to is None:
        return fail("effective_to must be YYYY-MM-DD", 422)

    values = {}
    missing = []
    for name in NUMERIC_FIELDS:
        v = parse_decimal(j.get(name))
        if v is None:
            missing.append(name)
        values[name] = v
    if missing:
        return fail("numeric values required", 422, errors={k: "required number" for k in missing})

    # validates ranges and slab ordering; raises ConfigurationError (422)
    RateSet.from_values(pt_slabs=j.get("pt_slabs") or [], effective_from=eff_from,
                        effective_to=eff_to, **values)

    row = RateSetConfig(
        label=(j.get("label") or "").strip() or None,
        effective_from=eff_from,
        effective_to=eff_to,
        pt_slabs=j.get("pt_slabs") or [],
        created_by=current_user_id(),
        **values,
    )
    db.session.add(row)
    db.session.commit()
    return ok(_row(row), 201)


@bp.get("")
@requires_perms("payroll.rates.read")
def list_rate_sets():
    q = RateSetConfig.query.order_by(RateSetConfig.effective_from.desc(), RateSetConfig.id.desc())
    page, size = page_limit()
    total = q.count()
    rows = q.offset((page-1)*size).limit(size).all()
    return paged([_row(r) for r in rows], page, size, total)


@bp.get("/resolve")
@requires_perms("payroll.rates.read")
def resolve_rate_set():
    """Rate set in force on ?on=YYYY-MM-DD (default today)."""
    on = request.args.get("on")
    d = parse_date(on) if on else date.today()
    if d is None:
        return fail("on must be YYYY-MM-DD", 422)
    return ok(rate_table.resolve(d).to_dict(), on=d.isoformat())
