# payroll_api/models/payroll/__init__.py
from payroll_api.extensions import db  # noqa

from .rate_set import RateSetConfig
from .pay_run import PayRun, PayRunItem

__all__ = ["RateSetConfig", "PayRun", "PayRunItem"]
