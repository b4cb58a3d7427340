import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import insert, select, literal, func, Integer, String, DateTime, Numeric
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import AlreadyEnrolled, LedgerNotFound, IndexOutOfRange
from app.models.installment_plan_model import InstallmentPlan
from app.models.user_ledger_model import UserLedger, LedgerPayment
from app.services.access_evaluator import evaluate_access, INSTALLMENTS_OVERDUE
from app.services.ledger_view import (
    LedgerView,
    InstallmentState,
    resolve_anchor,
    next_unpaid_due_date,
    summarize_balance,
    build_timeline,
)
from app.utils.installment_calculations import money, utc_now

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Helpers
# -------------------------------------------------
def make_snapshot(plan: InstallmentPlan) -> dict:
    """Deep copy of what the user owes, frozen at enrollment."""
    return {
        "planType": plan.plan_type,
        "totalAmount": str(money(plan.total_amount)),
        "numberOfInstallments": len(plan.installments),
        "installments": [
            {
                "amount": str(money(inst.amount)),
                "dueDateOffset": inst.due_date_offset,
                "dueDate": inst.due_date_label,
            }
            for inst in plan.installments
        ],
    }


def snapshot_amounts(ledger: UserLedger) -> list[Decimal]:
    return [money(i["amount"]) for i in (ledger.plan_snapshot or {}).get("installments", [])]


def paid_entries(ledger: UserLedger) -> dict:
    """installment_index -> first paid LedgerPayment."""
    out = {}
    for p in ledger.payments:
        if p.status == "paid" and p.installment_index not in out:
            out[p.installment_index] = p
    return out


def ledger_view(ledger: UserLedger) -> LedgerView:
    paid = paid_entries(ledger)

    installments = []
    for idx, amount in enumerate(snapshot_amounts(ledger)):
        p = paid.get(idx)
        installments.append(
            InstallmentState(
                index=idx,
                amount=amount,
                is_paid=p is not None,
                paid_amount=money(p.amount) if p else Decimal("0.00"),
                paid_at=p.paid_at if p else None,
                order_id=p.order_id if p else None,
            )
        )

    first = paid.get(0)
    return LedgerView(
        source="ledger",
        user_id=ledger.user_id,
        course_id=ledger.course_id,
        plan_type=ledger.plan_snapshot.get("planType"),
        total_amount=money(ledger.plan_snapshot.get("totalAmount")),
        anchor_date=resolve_anchor(first.paid_at if first else None, ledger.created_on),
        installments=installments,
        status=ledger.status,
        ledger_id=ledger.ledger_id,
    )


def find_ledger(db: Session, user_id: int, course_id: int) -> Optional[UserLedger]:
    return (
        db.query(UserLedger)
        .filter(UserLedger.user_id == user_id, UserLedger.course_id == course_id)
        .first()
    )


def get_ledger(db: Session, user_id: int, course_id: int) -> UserLedger:
    ledger = find_ledger(db, user_id, course_id)
    if not ledger:
        raise LedgerNotFound(f"No installment enrollment for user {user_id} in course {course_id}")
    return ledger


def list_user_ledgers(db: Session, user_id: int) -> list[UserLedger]:
    return (
        db.query(UserLedger)
        .filter(UserLedger.user_id == user_id)
        .order_by(UserLedger.ledger_id.desc())
        .all()
    )


# =================================================
# 🔹 ENROLLMENT
# =================================================
def enroll(
        db: Session,
        user_id: int,
        course_id: int,
        plan: InstallmentPlan,
        enrolled_at: Optional[datetime] = None,
) -> UserLedger:
    """The only place plan_snapshot is written."""
    if find_ledger(db, user_id, course_id):
        raise AlreadyEnrolled(f"User {user_id} is already enrolled in course {course_id}")

    created_on = enrolled_at or utc_now()
    ledger = UserLedger(
        user_id=user_id,
        course_id=course_id,
        installment_plan_id=plan.plan_id,
        plan_snapshot=make_snapshot(plan),
        remaining_amount=money(plan.total_amount),
        status="pending",
        next_due_date=created_on,
        created_on=created_on,
    )

    try:
        db.add(ledger)
        db.commit()
    except IntegrityError:
        # a concurrent enrollment won the (user_id, course_id) unique constraint
        db.rollback()
        raise AlreadyEnrolled(f"User {user_id} is already enrolled in course {course_id}")

    db.refresh(ledger)
    logger.info(
        "Enrolled user=%s course=%s plan=%s (%s) total=%s",
        user_id, course_id, plan.plan_id, plan.plan_type, ledger.remaining_amount,
    )
    return ledger


# =================================================
# 🔹 PAYMENTS (idempotent append)
# =================================================
def _append_if_unpaid(
        db: Session,
        ledger_id: int,
        installment_index: int,
        amount: Decimal,
        order_id: Optional[str],
        paid_at: datetime,
) -> bool:
    """
    Single-statement conditional insert:
      INSERT INTO ledger_payments (...) SELECT ... WHERE NOT EXISTS (paid row for index)
    The partial unique index turns a concurrent duplicate into IntegrityError.
    """
    already_paid = (
        select(LedgerPayment.payment_id)
        .where(
            LedgerPayment.ledger_id == ledger_id,
            LedgerPayment.installment_index == installment_index,
            LedgerPayment.status == "paid",
        )
        .correlate(None)
        .exists()
    )

    row = select(
        literal(ledger_id, Integer),
        literal(installment_index, Integer),
        literal(amount, Numeric(12, 2)),
        literal(paid_at, DateTime),
        literal(order_id, String),
        literal("paid", String),
    ).where(~already_paid)

    stmt = insert(LedgerPayment).from_select(
        ["ledger_id", "installment_index", "amount", "paid_at", "order_id", "status"],
        row,
    )

    try:
        result = db.execute(stmt)
    except IntegrityError:
        db.rollback()
        return False
    return result.rowcount == 1


def _refresh_derived(db: Session, ledger: UserLedger):
    paid_sum = (
        db.query(func.coalesce(func.sum(LedgerPayment.amount), 0))
        .filter(LedgerPayment.ledger_id == ledger.ledger_id, LedgerPayment.status == "paid")
        .scalar()
    )
    total = money(ledger.plan_snapshot.get("totalAmount"))
    ledger.remaining_amount = money(total - money(paid_sum))

    if ledger.remaining_amount <= 0:
        ledger.status = "completed"
        ledger.next_due_date = None
    else:
        db.expire(ledger, ["payments"])
        ledger.next_due_date = next_unpaid_due_date(ledger_view(ledger))


def record_payment(
        db: Session,
        user_id: int,
        course_id: int,
        installment_index: int,
        amount,
        order_id: Optional[str] = None,
        paid_at: Optional[datetime] = None,
) -> tuple[UserLedger, bool]:
    """
    Append a paid entry unless the installment already has one.

    Returns (ledger, applied). A replay is a successful no-op: the ledger is
    returned unchanged with applied=False.
    """
    ledger = get_ledger(db, user_id, course_id)

    n = len(snapshot_amounts(ledger))
    if installment_index is None or installment_index < 0 or installment_index >= n:
        raise IndexOutOfRange(
            f"Installment index {installment_index} outside [0, {n})",
            field="installment_index",
        )

    applied = _append_if_unpaid(
        db,
        ledger.ledger_id,
        installment_index,
        money(amount),
        order_id,
        paid_at or utc_now(),
    )

    if not applied:
        db.rollback()
        logger.warning(
            "Replay ignored: installment %s already paid user=%s course=%s order=%s",
            installment_index, user_id, course_id, order_id,
        )
        return get_ledger(db, user_id, course_id), False

    _refresh_derived(db, ledger)
    db.commit()
    db.refresh(ledger)

    logger.info(
        "Recorded installment %s/%s user=%s course=%s amount=%s order=%s remaining=%s",
        installment_index + 1, n, user_id, course_id, money(amount), order_id, ledger.remaining_amount,
    )
    return ledger, True


# =================================================
# 🔹 READ MODELS
# =================================================
def get_outstanding_balance(db: Session, user_id: int, course_id: int) -> dict:
    return summarize_balance(ledger_view(get_ledger(db, user_id, course_id)))


def get_timeline(db: Session, user_id: int, course_id: int, now: Optional[datetime] = None) -> dict:
    return build_timeline(ledger_view(get_ledger(db, user_id, course_id)), now or utc_now())


def is_fully_paid(ledger: UserLedger) -> bool:
    view = ledger_view(ledger)
    return all(i.is_paid for i in view.installments)


# =================================================
# 🔹 STATUS SWEEP
# =================================================
def sweep_ledger_statuses(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Walk open ledgers: overdue -> defaulted, current again -> pending, and
    refresh the next_due_date cache. Advisory bookkeeping only; access
    checks never read these columns.
    """
    now = now or utc_now()
    checked = revoked = restored = 0

    ledgers = db.query(UserLedger).filter(UserLedger.status.in_(("pending", "defaulted"))).all()
    for ledger in ledgers:
        checked += 1
        view = ledger_view(ledger)
        decision = evaluate_access(view, now)

        if not decision["has_access"]:
            revoked += 1
            if decision["reason"] == INSTALLMENTS_OVERDUE and ledger.status != "defaulted":
                ledger.status = "defaulted"
                logger.warning(
                    "Ledger %s defaulted user=%s course=%s overdue=%s",
                    ledger.ledger_id, ledger.user_id, ledger.course_id,
                    decision.get("total_overdue_amount"),
                )
        elif ledger.status == "defaulted":
            ledger.status = "pending"
            restored += 1
            logger.info("Ledger %s back to pending user=%s course=%s", ledger.ledger_id, ledger.user_id, ledger.course_id)

        ledger.next_due_date = next_unpaid_due_date(view)

    db.commit()
    logger.info("Ledger sweep: checked=%s revoked=%s restored=%s", checked, revoked, restored)

    return {
        "total_checked": checked,
        "access_revoked": revoked,
        "access_restored": restored,
        "timestamp": now,
    }
