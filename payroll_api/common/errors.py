# payroll_api/common/errors.py
from flask import current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from payroll_api.common.http import fail


class APIError(Exception):
    """Custom API Error class."""
    code = "API_ERROR"
    status_code = 400

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


# ---- payroll taxonomy ----

class ConfigurationError(APIError):
    """Missing or invalid configuration (rate table, structure, attendance).
    Fatal for the affected employee only when raised inside a pay run."""
    code = "CONFIGURATION_ERROR"
    status_code = 422


class InconsistentSalaryStructureError(ConfigurationError):
    code = "INCONSISTENT_SALARY_STRUCTURE"


class InconsistentAttendanceError(ConfigurationError):
    code = "INCONSISTENT_ATTENDANCE"


class DuplicatePayRunError(APIError):
    code = "DUPLICATE_PAY_RUN"
    status_code = 409


class InvalidLoanTermsError(APIError):
    code = "INVALID_LOAN_TERMS"
    status_code = 422


class InvalidTransitionError(APIError):
    code = "INVALID_TRANSITION"
    status_code = 409


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _integrity(e: IntegrityError):
        # 409 for unique/FK violations
        return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                    detail=str(e.orig) if getattr(e, "orig", None) else str(e))

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        current_app.logger.exception(e)
        return fail("Internal server error", status=500)
