from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import insert
from sqlalchemy.sql.dml import Insert

from app.core.errors import AlreadyEnrolled, LedgerNotFound, IndexOutOfRange
from app.models.user_ledger_model import LedgerPayment
from app.services import user_ledger

USER = 42
ENROLLED = datetime(2024, 1, 10, 9, 0)


@pytest.fixture
def ledger(db, course, three_month_plan):
    return user_ledger.enroll(db, USER, course.course_id, three_month_plan, enrolled_at=ENROLLED)


def test_enroll_freezes_snapshot(ledger, three_month_plan):
    assert ledger.plan_snapshot["planType"] == "3 months"
    assert ledger.plan_snapshot["totalAmount"] == "3000.00"
    assert ledger.remaining_amount == Decimal("3000.00")
    assert ledger.status == "pending"
    assert ledger.payments == []
    assert ledger.installment_plan_id == three_month_plan.plan_id


def test_enroll_twice_rejected(db, course, three_month_plan, ledger):
    with pytest.raises(AlreadyEnrolled):
        user_ledger.enroll(db, USER, course.course_id, three_month_plan)


def test_record_payment_before_enroll(db, course):
    with pytest.raises(LedgerNotFound):
        user_ledger.record_payment(db, USER, course.course_id, 0, 1000)


@pytest.mark.parametrize("index", [-1, 3, None])
def test_record_payment_index_out_of_range(db, course, ledger, index):
    with pytest.raises(IndexOutOfRange):
        user_ledger.record_payment(db, USER, course.course_id, index, 1000)


def test_record_payment_is_idempotent(db, course, ledger):
    first, applied = user_ledger.record_payment(db, USER, course.course_id, 0, 1000, order_id="order_1")
    assert applied is True
    assert first.remaining_amount == Decimal("2000.00")

    again, applied = user_ledger.record_payment(db, USER, course.course_id, 0, 1000, order_id="order_1")
    assert applied is False
    assert again.remaining_amount == Decimal("2000.00")

    paid_rows = (
        db.query(LedgerPayment)
        .filter(LedgerPayment.ledger_id == ledger.ledger_id, LedgerPayment.installment_index == 0)
        .all()
    )
    assert len(paid_rows) == 1


def test_concurrent_duplicate_stopped_by_unique_index(db, course, ledger, monkeypatch):
    # another worker committed installment 0 after this worker's NOT EXISTS check
    db.execute(
        insert(LedgerPayment).values(
            ledger_id=ledger.ledger_id,
            installment_index=0,
            amount=Decimal("1000.00"),
            paid_at=ENROLLED,
            order_id="order_other",
            status="paid",
        )
    )
    db.commit()

    execute = db.execute

    def racing_execute(statement, *args, **kwargs):
        if isinstance(statement, Insert) and statement.table.name == LedgerPayment.__tablename__:
            statement = insert(LedgerPayment).values(
                ledger_id=ledger.ledger_id,
                installment_index=0,
                amount=Decimal("1000.00"),
                paid_at=ENROLLED,
                order_id="order_mine",
                status="paid",
            )
        return execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", racing_execute)
    same, applied = user_ledger.record_payment(db, USER, course.course_id, 0, 1000, order_id="order_mine")
    monkeypatch.undo()

    assert applied is False
    assert same.remaining_amount == Decimal("3000.00")

    rows = db.query(LedgerPayment).filter(LedgerPayment.ledger_id == ledger.ledger_id).all()
    assert [(r.installment_index, r.order_id) for r in rows] == [(0, "order_other")]

    # session is still usable after the rejected insert
    nxt, applied = user_ledger.record_payment(db, USER, course.course_id, 1, 1000, order_id="order_next")
    assert applied is True
    assert nxt.remaining_amount == Decimal("1000.00")


def test_replay_with_different_order_still_ignored(db, course, ledger):
    user_ledger.record_payment(db, USER, course.course_id, 1, 1000, order_id="order_1")
    _, applied = user_ledger.record_payment(db, USER, course.course_id, 1, 1000, order_id="order_2")
    assert applied is False
    assert len(user_ledger.get_ledger(db, USER, course.course_id).payments) == 1


def test_out_of_order_payments_allowed(db, course, ledger):
    user_ledger.record_payment(db, USER, course.course_id, 2, 1000)
    user_ledger.record_payment(db, USER, course.course_id, 0, 1000)

    balance = user_ledger.get_outstanding_balance(db, USER, course.course_id)
    assert [i["is_paid"] for i in balance["installments"]] == [True, False, True]
    assert balance["remaining_amount"] == Decimal("1000.00")


def test_last_payment_completes_ledger(db, course, ledger):
    for i in range(3):
        result, _ = user_ledger.record_payment(db, USER, course.course_id, i, 1000)

    assert result.status == "completed"
    assert result.remaining_amount == Decimal("0.00")
    assert result.next_due_date is None
    assert user_ledger.is_fully_paid(result)


def test_balance_derived_from_payments(db, course, ledger):
    user_ledger.record_payment(db, USER, course.course_id, 0, 1000, order_id="order_1")

    balance = user_ledger.get_outstanding_balance(db, USER, course.course_id)
    assert balance["source"] == "ledger"
    assert balance["total_amount"] == Decimal("3000.00")
    assert balance["paid_amount"] == Decimal("1000.00")
    assert balance["remaining_amount"] == Decimal("2000.00")
    assert balance["installments"][0]["order_id"] == "order_1"


def test_timeline_anchors_on_first_payment(db, course, ledger):
    paid_at = datetime(2024, 1, 20, 15, 0)
    user_ledger.record_payment(db, USER, course.course_id, 0, 1000, paid_at=paid_at)

    out = user_ledger.get_timeline(db, USER, course.course_id, now=datetime(2024, 2, 1))
    assert out["anchor_date"] == paid_at
    assert [e["due_date"] for e in out["timeline"]] == [
        datetime(2024, 1, 20, 15, 0),
        datetime(2024, 2, 20, 15, 0),
        datetime(2024, 3, 20, 15, 0),
    ]
    assert [e["status"] for e in out["timeline"]] == ["PAID", "UPCOMING", "UPCOMING"]
    assert out["timeline"][0]["paid_on"] == paid_at


def test_timeline_falls_back_to_enrollment(db, course, ledger):
    out = user_ledger.get_timeline(db, USER, course.course_id, now=datetime(2024, 3, 15))
    assert out["anchor_date"] == ENROLLED
    assert [e["status"] for e in out["timeline"]] == ["OVERDUE", "OVERDUE", "OVERDUE"]
    assert out["timeline"][1]["days_past_due"] == 34


def test_next_due_date_cache_follows_payments(db, course, ledger):
    paid_at = datetime(2024, 1, 20)
    updated, _ = user_ledger.record_payment(db, USER, course.course_id, 0, 1000, paid_at=paid_at)
    assert updated.next_due_date == datetime(2024, 2, 20)


def test_sweep_marks_defaulted_then_restores(db, course, ledger):
    user_ledger.record_payment(db, USER, course.course_id, 0, 1000, paid_at=ENROLLED)

    out = user_ledger.sweep_ledger_statuses(db, now=datetime(2024, 2, 20))
    assert out["total_checked"] == 1
    assert out["access_revoked"] == 1
    assert user_ledger.get_ledger(db, USER, course.course_id).status == "defaulted"

    user_ledger.record_payment(db, USER, course.course_id, 1, 1000)
    out = user_ledger.sweep_ledger_statuses(db, now=datetime(2024, 2, 20))
    assert out["access_restored"] == 1
    assert user_ledger.get_ledger(db, USER, course.course_id).status == "pending"


def test_list_user_ledgers(db, course, ledger):
    assert [l.ledger_id for l in user_ledger.list_user_ledgers(db, USER)] == [ledger.ledger_id]
    assert user_ledger.list_user_ledgers(db, USER + 1) == []
