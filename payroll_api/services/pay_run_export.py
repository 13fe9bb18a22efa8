import csv
import io
from decimal import Decimal
from typing import Any, List, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font

from payroll_api.models.payroll.pay_run import PayRun, PayRunItem
from payroll_api.services.money import dec

# (header, attribute, numeric)
COLUMNS: Tuple[Tuple[str, str, bool], ...] = (
    ("Employee ID", "employee_id", False),
    ("Employee Code", "employee_code", False),
    ("Employee Name", "employee_name", False),
    ("Department", "department", False),
    ("Designation", "designation", False),
    ("Basic", "basic", True),
    ("HRA", "hra", True),
    ("Conveyance", "conveyance", True),
    ("Telephone", "telephone", True),
    ("Medical Allowance", "medical", True),
    ("Special Allowance", "special_allowance", True),
    ("Other Allowances", "other_allowances", True),
    ("Gross Salary", "gross", True),
    ("Working Days", "total_working_days", True),
    ("Payable Days", "payable_days", True),
    ("LOP Days", "lop_days", True),
    ("LOP Amount", "lop_amount", True),
    ("Prorated Gross", "prorated_gross", True),
    ("PF Employee", "pf_employee", True),
    ("PF Employer", "pf_employer", True),
    ("ESI Employee", "esi_employee", True),
    ("ESI Employer", "esi_employer", True),
    ("Professional Tax", "professional_tax", True),
    ("TDS", "tds", True),
    ("Advance Deduction", "advance_deduction", True),
    ("Loan Deduction", "loan_deduction", True),
    ("Total Deductions", "total_deductions", True),
    ("Net Pay", "net_pay", True),
)

HEADERS = [c[0] for c in COLUMNS]


def _cell(item: PayRunItem, attr: str, numeric: bool):
    v = getattr(item, attr, None)
    if numeric:
        return dec(v)
    return v


def table_rows(run: PayRun) -> Tuple[List[List[Any]], List[Any]]:
    """One row per employee plus a TOTAL row summing every numeric column."""
    rows: List[List[Any]] = []
    totals = [Decimal("0") if numeric else None for (_, _, numeric) in COLUMNS]
    for item in run.items:
        row = [_cell(item, attr, numeric) for (_, attr, numeric) in COLUMNS]
        for i, (_, _, numeric) in enumerate(COLUMNS):
            if numeric:
                totals[i] += row[i]
        rows.append(row)
    totals[2] = "TOTAL"
    return rows, totals


def _fmt(v):
    if isinstance(v, Decimal):
        if v == v.to_integral_value() and v.as_tuple().exponent >= 0:
            return str(v)
        return f"{v:.2f}"
    return "" if v is None else v


def to_csv(run: PayRun) -> str:
    rows, totals = table_rows(run)
    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow(HEADERS)
    for row in rows:
        w.writerow([_fmt(v) for v in row])
    w.writerow([_fmt(v) for v in totals])
    return buf.getvalue()


def to_xlsx(run: PayRun) -> io.BytesIO:
    rows, totals = table_rows(run)
    wb = Workbook()
    ws = wb.active
    ws.title = f"PAYRUN {run.year}-{run.month:02d}"
    ws.append(HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    def _num(v):
        return float(v) if isinstance(v, Decimal) else v

    for row in rows:
        ws.append([_num(v) for v in row])
    ws.append([_num(v) for v in totals])
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)

    if run.exclusions:
        wx = wb.create_sheet("EXCLUDED")
        wx.append(["Employee ID", "Employee Code", "Employee Name", "Code", "Reason"])
        for x in run.exclusions:
            wx.append([x.get("employee_id"), x.get("employee_code"), x.get("employee_name"),
                       x.get("code"), x.get("reason")])

    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio


def export_filename(run: PayRun, fmt: str) -> str:
    return f"payrun_{run.year}{run.month:02d}_{run.id}.{fmt}"
