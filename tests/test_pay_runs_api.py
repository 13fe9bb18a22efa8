import csv
import io
import os
from datetime import date

from flask_jwt_extended import create_access_token
from openpyxl import load_workbook

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.employee import Employee


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _auth(app, roles=None, perms=None):
    with app.app_context():
        tok = create_access_token(identity="1", additional_claims={
            "roles": roles if roles is not None else ["admin"],
            "perms": perms or [],
        })
    return {"Authorization": f"Bearer {tok}"}


def _setup(app, h):
    with app.app_context():
        db.create_all()
        a = Employee(code="E001", first_name="Asha", last_name="Rao", department="Engineering")
        b = Employee(code="E002", first_name="Vikram", department="Support")
        db.session.add_all([a, b]); db.session.commit()
        ids = (a.id, b.id)

    c = app.test_client()
    r = c.post("/api/v1/rate-sets", headers=h, json={
        "effective_from": "2025-01-01", "pf_rate": 12, "pf_wage_ceiling": 15000,
        "esi_rate": 0.75, "esi_employer_rate": 3.25, "esi_wage_ceiling": 21000,
        "pt_slabs": [{"min": 0, "max": 25000, "amount": 0}, {"min": 25000.01, "max": None, "amount": 200}],
    })
    assert r.status_code == 201, r.get_json()
    r = c.post("/api/v1/salary-structures", headers=h, json={
        "employee_id": ids[0], "effective_from": "2025-01-01", "ctc": 1200000,
        "conveyance": 1600, "medical": 1250, "includes_pf": True, "includes_esi": True,
    })
    assert r.status_code == 201, r.get_json()
    r = c.post("/api/v1/salary-structures", headers=h, json={
        "employee_id": ids[1], "effective_from": "2025-01-01", "ctc": 240000,
        "includes_pf": True, "includes_esi": True,
    })
    assert r.status_code == 201, r.get_json()
    return c, ids


def test_generate_get_and_duplicate():
    app = _mk_app()
    h = _auth(app)
    c, ids = _setup(app, h)

    r = c.post("/api/v1/pay-runs", headers=h, json={"month": "March", "year": 2025})
    assert r.status_code == 201, r.get_json()
    run = r.get_json()["data"]
    assert run["status"] == "draft"
    assert run["employee_count"] == 2
    assert run["total_gross"] == 120000.0
    assert run["total_net"] == 98000.0 + 18650.0

    r = c.post("/api/v1/pay-runs", headers=h, json={"month": 3, "year": 2025})
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "DUPLICATE_PAY_RUN"

    r = c.get("/api/v1/pay-runs/period/2025/3", headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["id"] == run["id"]

    r = c.get("/api/v1/pay-runs/period/2025/4", headers=h)
    assert r.status_code == 404

    r = c.get(f"/api/v1/pay-runs/{run['id']}/items?employee_id={ids[0]}", headers=h)
    items = r.get_json()["data"]
    assert len(items) == 1
    assert items[0]["employee_name"] == "Asha Rao"
    assert items[0]["gross"] == 100000.0
    assert items[0]["pf_employee"] == 1800.0
    assert items[0]["professional_tax"] == 200.0
    assert items[0]["net_pay"] == 98000.0

    r = c.get("/api/v1/pay-runs?year=2025&status=draft", headers=h)
    body = r.get_json()
    assert body["meta"]["total"] == 1


def test_transitions_over_http():
    app = _mk_app()
    h = _auth(app)
    c, _ = _setup(app, h)
    run_id = c.post("/api/v1/pay-runs", headers=h, json={"month": 3, "year": 2025}).get_json()["data"]["id"]

    r = c.post(f"/api/v1/pay-runs/{run_id}/process", headers=h)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "INVALID_TRANSITION"

    assert c.post(f"/api/v1/pay-runs/{run_id}/approve", headers=h).get_json()["data"]["status"] == "approved"
    assert c.post(f"/api/v1/pay-runs/{run_id}/process", headers=h).get_json()["data"]["status"] == "processed"
    assert c.post(f"/api/v1/pay-runs/{run_id}/process", headers=h).status_code == 409
    assert c.post(f"/api/v1/pay-runs/{run_id}/cancel", headers=h).status_code == 409


def test_cancel_then_regenerate():
    app = _mk_app()
    h = _auth(app)
    c, _ = _setup(app, h)
    first = c.post("/api/v1/pay-runs", headers=h, json={"month": 3, "year": 2025}).get_json()["data"]["id"]
    r = c.post(f"/api/v1/pay-runs/{first}/cancel", headers=h)
    assert r.get_json()["data"]["status"] == "cancelled"

    r = c.post("/api/v1/pay-runs", headers=h, json={"month": 3, "year": 2025})
    assert r.status_code == 201
    assert r.get_json()["data"]["id"] != first


def test_bad_period_and_missing_run():
    app = _mk_app()
    h = _auth(app)
    c, _ = _setup(app, h)
    assert c.post("/api/v1/pay-runs", headers=h, json={"month": 13, "year": 2025}).status_code == 422
    assert c.post("/api/v1/pay-runs", headers=h, json={}).status_code == 422
    assert c.post("/api/v1/pay-runs/999/approve", headers=h).status_code == 404


def test_export_csv_has_totals_row():
    app = _mk_app()
    h = _auth(app)
    c, _ = _setup(app, h)
    run_id = c.post("/api/v1/pay-runs", headers=h, json={"month": 3, "year": 2025}).get_json()["data"]["id"]

    r = c.get(f"/api/v1/pay-runs/{run_id}/export?format=csv", headers=h)
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "payrun_202503_" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.get_data(as_text=True))))
    header, body, total = rows[0], rows[1:-1], rows[-1]
    assert len(body) == 2
    assert total[header.index("Employee Name")] == "TOTAL"
    assert total[header.index("Gross Salary")] == "120000.00"
    assert total[header.index("Net Pay")] == "116650.00"
    assert total[header.index("Working Days")] == "52"
    net = sum(float(row[header.index("Net Pay")]) for row in body)
    assert net == float(total[header.index("Net Pay")])


def test_export_xlsx_has_totals_row():
    app = _mk_app()
    h = _auth(app)
    c, _ = _setup(app, h)
    run_id = c.post("/api/v1/pay-runs", headers=h, json={"month": 3, "year": 2025}).get_json()["data"]["id"]

    r = c.get(f"/api/v1/pay-runs/{run_id}/export?format=xlsx", headers=h)
    assert r.status_code == 200
    wb = load_workbook(io.BytesIO(r.data))
    ws = wb.active
    header = [cell.value for cell in ws[1]]
    last = [cell.value for cell in ws[ws.max_row]]
    assert ws.max_row == 4
    assert last[header.index("Employee Name")] == "TOTAL"
    assert last[header.index("Total Deductions")] == 1800.0 + 200.0 + 1200.0 + 150.0

    assert c.get(f"/api/v1/pay-runs/{run_id}/export?format=pdf", headers=h).status_code == 422


def test_permissions():
    app = _mk_app()
    admin = _auth(app)
    c, _ = _setup(app, admin)

    reader = _auth(app, roles=[], perms=["payroll.run.read"])
    assert c.get("/api/v1/pay-runs", headers=reader).status_code == 200
    assert c.post("/api/v1/pay-runs", headers=reader, json={"month": 3, "year": 2025}).status_code == 403

    wildcard = _auth(app, roles=[], perms=["payroll.*"])
    assert c.post("/api/v1/pay-runs", headers=wildcard, json={"month": 3, "year": 2025}).status_code == 201

    assert c.get("/api/v1/pay-runs").status_code == 401


def test_rate_set_endpoints():
    app = _mk_app()
    h = _auth(app)
    c, _ = _setup(app, h)

    r = c.get("/api/v1/rate-sets/resolve?on=2025-06-01", headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["pf_wage_ceiling"] == 15000.0

    r = c.get("/api/v1/rate-sets/resolve?on=2024-06-01", headers=h)
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "CONFIGURATION_ERROR"

    r = c.post("/api/v1/rate-sets", headers=h, json={
        "effective_from": str(date(2025, 7, 1)), "pf_rate": 112, "pf_wage_ceiling": 15000,
        "esi_rate": 0.75, "esi_employer_rate": 3.25, "esi_wage_ceiling": 21000,
    })
    assert r.status_code == 422
    assert c.get("/api/v1/rate-sets", headers=h).get_json()["meta"]["total"] == 1
