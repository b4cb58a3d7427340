"""
Error taxonomy for installment tracking and access gating.

Every error carries a stable ``code`` (returned to clients as the reason
code), the HTTP status the API layer should answer with, a human readable
message and, for input validation errors, the offending field.
"""
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status


class InstallmentError(Exception):
    code = "INSTALLMENT_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        out = {"success": False, "code": self.code, "message": self.message}
        if self.field:
            out["field"] = self.field
        return out


# -------------------------------------------------
# Input validation (rejected before any write)
# -------------------------------------------------
class InvalidPrice(InstallmentError):
    code = "INVALID_PRICE"


class InvalidDiscountRange(InstallmentError):
    code = "INVALID_DISCOUNT_RANGE"


class InvalidInstallmentCount(InstallmentError):
    code = "INVALID_INSTALLMENT_COUNT"


class InstallmentTooSmall(InstallmentError):
    code = "INSTALLMENT_TOO_SMALL"


class IndexOutOfRange(InstallmentError):
    code = "INDEX_OUT_OF_RANGE"


class PaymentModeMismatch(InstallmentError):
    code = "PAYMENT_MODE_MISMATCH"


# -------------------------------------------------
# Not found
# -------------------------------------------------
class NotFoundError(InstallmentError):
    status_code = status.HTTP_404_NOT_FOUND


class PlanNotFound(NotFoundError):
    code = "PLAN_NOT_FOUND"


class LedgerNotFound(NotFoundError):
    code = "LEDGER_NOT_FOUND"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"


class CourseNotFound(NotFoundError):
    code = "COURSE_NOT_FOUND"


class SubscriptionNotFound(NotFoundError):
    code = "SUBSCRIPTION_NOT_FOUND"


class AlertNotFound(NotFoundError):
    code = "ALERT_NOT_FOUND"


# -------------------------------------------------
# Integrity
# -------------------------------------------------
class AlreadyEnrolled(InstallmentError):
    code = "ALREADY_ENROLLED"
    status_code = status.HTTP_409_CONFLICT


class InstallmentAlreadyPaid(InstallmentError):
    code = "INSTALLMENT_ALREADY_PAID"
    status_code = status.HTTP_409_CONFLICT


class PlanInUse(InstallmentError):
    code = "PLAN_IN_USE"
    status_code = status.HTTP_409_CONFLICT


# -------------------------------------------------
# Trust boundary (fail closed)
# -------------------------------------------------
class InvalidSignature(InstallmentError):
    code = "INVALID_SIGNATURE"


class MalformedWebhook(InstallmentError):
    code = "MALFORMED_WEBHOOK"


RECONCILE_FAILED = "RECONCILE_FAILED"


async def installment_error_handler(request: Request, exc: InstallmentError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
