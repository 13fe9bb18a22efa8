# payroll_api/common/paging.py
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import request

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 200

MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def parse_date(s) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(str(s))
    except Exception:
        return None

def parse_month(v) -> Optional[int]:
    """Accept 1..12, "07" or a month name ("July", "jul")."""
    if v is None or v == "":
        return None
    s = str(v).strip().lower()
    if s.isdigit():
        m = int(s)
        return m if 1 <= m <= 12 else None
    for i, name in enumerate(MONTH_NAMES, start=1):
        if len(s) >= 3 and name.startswith(s):
            return i
    return None

def parse_int(v) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None

def parse_decimal(v) -> Optional[Decimal]:
    if v is None or v == "":
        return None
    try:
        d = Decimal(str(v))
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None
