"""
Source-neutral view of one installment enrollment.

A ``LedgerView`` is built either from a UserLedger (user_ledger.ledger_view)
or from the legacy purchase array (legacy_bridge.legacy_view); balance,
timeline and access are all derived from it, so callers never branch on
which representation the facts came from.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.utils.installment_calculations import money, add_months, as_date


@dataclass
class InstallmentState:
    index: int
    amount: Decimal
    is_paid: bool = False
    paid_amount: Decimal = Decimal("0.00")
    paid_at: Optional[datetime] = None
    order_id: Optional[str] = None


@dataclass
class LedgerView:
    source: str  # "ledger" / "legacy"
    user_id: int
    course_id: int
    plan_type: Optional[str]
    total_amount: Decimal
    anchor_date: datetime
    installments: list = field(default_factory=list)
    status: Optional[str] = None
    ledger_id: Optional[int] = None

    @property
    def paid_amount(self) -> Decimal:
        return money(sum((i.paid_amount for i in self.installments if i.is_paid), Decimal("0")))

    @property
    def remaining_amount(self) -> Decimal:
        return money(self.total_amount - self.paid_amount)

    def due_date(self, index: int) -> datetime:
        return add_months(self.anchor_date, index)

    def installment(self, index: int) -> Optional[InstallmentState]:
        for inst in self.installments:
            if inst.index == index:
                return inst
        return None


def resolve_anchor(first_paid_at: Optional[datetime], created_on: datetime) -> datetime:
    """Actual payment time of installment #1; enrollment time only when unrecoverable."""
    return first_paid_at or created_on


def is_overdue(due_date: datetime, now: datetime) -> bool:
    # calendar comparison: paying on the due date itself is on time
    return as_date(now) > as_date(due_date)


def days_past_due(due_date: datetime, now: datetime) -> int:
    return max(0, (as_date(now) - as_date(due_date)).days)


def next_unpaid_due_date(view: LedgerView) -> Optional[datetime]:
    for inst in view.installments:
        if not inst.is_paid:
            return view.due_date(inst.index)
    return None


def installment_item(inst: InstallmentState, **extra) -> dict:
    """Common per-installment fields shared by balance, timeline and access payloads."""
    item = {
        "installment_index": inst.index,
        "installment_number": inst.index + 1,
        "amount": money(inst.amount),
    }
    item.update(extra)
    return item


def summarize_balance(view: LedgerView) -> dict:
    return {
        "source": view.source,
        "plan_type": view.plan_type,
        "installments": [
            installment_item(inst, is_paid=inst.is_paid, paid_on=inst.paid_at, order_id=inst.order_id)
            for inst in view.installments
        ],
        "total_amount": money(view.total_amount),
        "paid_amount": view.paid_amount,
        "remaining_amount": view.remaining_amount,
    }


def build_timeline(view: LedgerView, now: datetime) -> dict:
    timeline = []
    for inst in view.installments:
        due = view.due_date(inst.index)

        if inst.is_paid:
            status = "PAID"
        elif is_overdue(due, now):
            status = "OVERDUE"
        else:
            status = "UPCOMING"

        timeline.append(
            installment_item(
                inst,
                due_date=due,
                is_paid=inst.is_paid,
                paid_on=inst.paid_at,
                status=status,
                days_past_due=days_past_due(due, now) if status == "OVERDUE" else 0,
            )
        )

    return {
        "source": view.source,
        "plan_type": view.plan_type,
        "anchor_date": view.anchor_date,
        "timeline": timeline,
        "total_amount": money(view.total_amount),
        "paid_amount": view.paid_amount,
        "remaining_amount": view.remaining_amount,
    }
