from datetime import datetime
from decimal import Decimal

import pytest

from app.core.errors import LedgerNotFound
from app.models.course_purchase_model import CoursePurchase
from app.services import installment_service, user_ledger
from app.services.access_evaluator import FIRST_INSTALLMENT_UNPAID, INSTALLMENTS_OVERDUE, PAYMENTS_CURRENT

USER = 99


@pytest.fixture
def legacy_purchase(db, course):
    purchase = CoursePurchase(
        user_id=USER,
        course_id=course.course_id,
        purchase_date=datetime(2024, 1, 1),
        amount_paid=Decimal("1000.00"),
        payment_type="installment",
        total_installments=3,
        installments=[
            {"installmentNumber": 2, "amount": 1000, "isPaid": False, "paidDate": None},
            {"installmentNumber": 1, "amount": 1000, "isPaid": True, "paidDate": "2024-01-05T10:00:00.000Z"},
            {"installmentNumber": 3, "amount": 1000, "isPaid": False, "paidDate": None},
        ],
    )
    db.add(purchase)
    db.commit()
    return purchase


def test_balance_from_legacy_array(db, course, legacy_purchase):
    out = installment_service.get_balance(db, USER, course.course_id)
    assert out["source"] == "legacy"
    assert out["total_amount"] == Decimal("3000.00")
    assert out["paid_amount"] == Decimal("1000.00")
    assert out["remaining_amount"] == Decimal("2000.00")
    assert [i["is_paid"] for i in out["installments"]] == [True, False, False]


def test_timeline_anchors_on_legacy_paid_date(db, course, legacy_purchase):
    out = installment_service.get_timeline(db, USER, course.course_id, now=datetime(2024, 1, 20))
    assert out["anchor_date"] == datetime(2024, 1, 5, 10, 0)
    assert out["timeline"][1]["due_date"] == datetime(2024, 2, 5, 10, 0)


def test_access_from_legacy_record(db, course, legacy_purchase):
    current = installment_service.check_access(db, USER, course.course_id, now=datetime(2024, 2, 5, 23, 0))
    assert current["reason"] == PAYMENTS_CURRENT

    overdue = installment_service.check_access(db, USER, course.course_id, now=datetime(2024, 2, 6))
    assert overdue["reason"] == INSTALLMENTS_OVERDUE
    assert overdue["total_overdue_amount"] == Decimal("1000.00")


def test_unpaid_first_legacy_installment_falls_back_to_purchase_date(db, course):
    db.add(
        CoursePurchase(
            user_id=USER,
            course_id=course.course_id,
            purchase_date=datetime(2024, 6, 1),
            payment_type="installment",
            installments=[
                {"installmentNumber": 1, "amount": 1500, "isPaid": "false"},
                {"installmentNumber": 2, "amount": 1500, "isPaid": False},
            ],
        )
    )
    db.commit()

    out = installment_service.get_timeline(db, USER, course.course_id, now=datetime(2024, 6, 2))
    assert out["anchor_date"] == datetime(2024, 6, 1)
    access = installment_service.check_access(db, USER, course.course_id, now=datetime(2024, 6, 2))
    assert access["reason"] == FIRST_INSTALLMENT_UNPAID


def test_ledger_wins_over_legacy(db, course, three_month_plan, legacy_purchase):
    user_ledger.enroll(db, USER, course.course_id, three_month_plan)

    out = installment_service.get_balance(db, USER, course.course_id)
    assert out["source"] == "ledger"
    assert out["paid_amount"] == Decimal("0.00")


def test_full_purchase_is_not_an_installment_record(db, course):
    db.add(CoursePurchase(user_id=USER, course_id=course.course_id, payment_type="full", amount_paid=Decimal("6000")))
    db.commit()

    with pytest.raises(LedgerNotFound):
        installment_service.get_balance(db, USER, course.course_id)
    assert installment_service.check_access(db, USER, course.course_id)["has_access"] is True


def test_legacy_reads_never_write(db, course, legacy_purchase):
    before = [dict(e) for e in legacy_purchase.installments]
    installment_service.check_access(db, USER, course.course_id, now=datetime(2025, 1, 1))
    installment_service.get_timeline(db, USER, course.course_id)

    db.expire_all()
    reloaded = db.query(CoursePurchase).filter(CoursePurchase.user_id == USER).one()
    assert reloaded.installments == before
    assert user_ledger.find_ledger(db, USER, course.course_id) is None


@pytest.mark.parametrize("installments", [["x"], [None, 7], [[1000, True]]])
def test_unreadable_legacy_array_treated_as_no_record(db, course, installments):
    db.add(
        CoursePurchase(
            user_id=USER,
            course_id=course.course_id,
            purchase_date=datetime(2024, 1, 1),
            payment_type="installment",
            installments=installments,
        )
    )
    db.commit()

    assert installment_service.resolve_view(db, USER, course.course_id) is None
    assert installment_service.check_access(db, USER, course.course_id)["reason"] == "FULL_PAYMENT"
    with pytest.raises(LedgerNotFound):
        installment_service.get_timeline(db, USER, course.course_id)
