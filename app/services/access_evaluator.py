"""
Course-access decisions for installment enrollments.

Pure function of a LedgerView and "now". Access is never persisted; it is
recomputed from payment facts on every content request so it cannot go stale.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.services.ledger_view import LedgerView, installment_item, is_overdue, days_past_due
from app.utils.installment_calculations import money

FULL_PAYMENT = "FULL_PAYMENT"
FIRST_INSTALLMENT_UNPAID = "FIRST_INSTALLMENT_UNPAID"
INSTALLMENTS_OVERDUE = "INSTALLMENTS_OVERDUE"
PAYMENTS_CURRENT = "PAYMENTS_CURRENT"


def evaluate_access(view: Optional[LedgerView], now: datetime) -> dict:
    """
    - no installment enrollment          -> FULL_PAYMENT (access governed elsewhere)
    - installment #1 unpaid              -> FIRST_INSTALLMENT_UNPAID, no grace period
    - any later unpaid installment whose
      due date (anchor + i months) < now -> INSTALLMENTS_OVERDUE
    - otherwise                          -> PAYMENTS_CURRENT
    """
    if view is None:
        return {"has_access": True, "reason": FULL_PAYMENT}

    first = view.installment(0)
    if first is None or not first.is_paid:
        return {
            "has_access": False,
            "reason": FIRST_INSTALLMENT_UNPAID,
            "message": "First installment payment is required",
            "plan_type": view.plan_type,
        }

    overdue = []
    next_due = None

    for inst in view.installments:
        if inst.index == 0 or inst.is_paid:
            continue

        due = view.due_date(inst.index)
        if is_overdue(due, now):
            overdue.append(installment_item(inst, due_date=due, days_past_due=days_past_due(due, now)))
        elif next_due is None:
            next_due = installment_item(inst, due_date=due)

    if overdue:
        total_overdue = money(sum((o["amount"] for o in overdue), Decimal("0")))
        return {
            "has_access": False,
            "reason": INSTALLMENTS_OVERDUE,
            "message": f"{len(overdue)} installment(s) overdue. Total amount: ₹{total_overdue}",
            "plan_type": view.plan_type,
            "overdue_installments": overdue,
            "total_overdue_amount": total_overdue,
        }

    return {
        "has_access": True,
        "reason": PAYMENTS_CURRENT,
        "plan_type": view.plan_type,
        "next_due_installment": next_due,
    }
