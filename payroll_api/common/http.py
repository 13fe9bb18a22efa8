# payroll_api/common/http.py
from flask import jsonify


def ok(data=None, status=200, **meta):
    payload = {"success": True, "data": data}
    meta = {k: v for k, v in meta.items() if v is not None}
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status


def paged(rows, page: int, size: int, total: int, **meta):
    """List envelope shared by every collection endpoint."""
    return ok(rows, page=page, size=size, total=total,
              pages=(total + size - 1) // size if size else 0, **meta)


def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    err = {"message": message}
    if code:
        err["code"] = code
    if detail is not None:
        err["detail"] = detail
    if errors:
        err["errors"] = errors
    return jsonify({"success": False, "error": err}), status
