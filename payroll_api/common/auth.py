# payroll_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Iterable, Optional, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from payroll_api.common.http import fail


# ---------- helpers ----------

def _wildcard_match(user_perm: str, required: str) -> bool:
    """
    Match required permission against a user's permission with simple wildcards.
    Examples:
      user_perm: 'payroll.*'          matches required: 'payroll.run.read'
      user_perm: 'payroll.run.*'      matches required: 'payroll.run.write'
      user_perm: 'payroll.run.read'   matches only exact
    """
    if user_perm == required:
        return True
    if user_perm.endswith(".*"):
        prefix = user_perm[:-2]
        return required.startswith(prefix + ".")
    return False


def _has_any_perm(user_perms: Set[str], required_perms: Iterable[str]) -> bool:
    if not required_perms:
        return True
    if not user_perms:
        return False
    for req in required_perms:
        if any(_wildcard_match(up, req) for up in user_perms):
            return True
    return False


def current_user_id() -> Optional[int]:
    """JWT subject as int when it is numeric; None otherwise."""
    try:
        ident = get_jwt_identity()
    except Exception:
        return None
    try:
        return int(ident) if ident is not None else None
    except (TypeError, ValueError):
        return None


# ---------- decorators ----------

def requires_perms(*perm_codes: str):
    """
    Require that the current user has ANY of the given permission codes.

    Permissions and roles are read from the JWT claims issued by the
    identity service ('perms', 'roles'). The 'admin' role always passes.

    Supports simple wildcards granted to the user:
      - 'payroll.*' or 'payroll.run.*'
    The required codes passed to the decorator should be explicit
    (e.g., 'payroll.run.read', 'payroll.run.write').
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            if not perm_codes:
                return fn(*args, **kwargs)

            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])
            if "admin" in roles:
                return fn(*args, **kwargs)

            if get_jwt_identity() is None:
                return fail("Unauthorized", status=401)

            perms = set(claims.get("perms") or [])
            if not _has_any_perm(perms, perm_codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
