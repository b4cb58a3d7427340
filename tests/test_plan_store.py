from decimal import Decimal

import pytest

from app.core.errors import PlanNotFound, PlanInUse, CourseNotFound, SubscriptionNotFound, InstallmentTooSmall
from app.models.system_settings_model import SystemSetting
from app.services import plan_store, user_ledger


def test_configure_plan_prices_from_validity(three_month_plan, course):
    plan = three_month_plan
    assert plan.course_id == course.course_id
    assert plan.plan_type == "3 months"
    assert plan.number_of_installments == 3
    assert plan.total_amount == Decimal("3000.00")
    assert [i.amount for i in plan.installments] == [Decimal("1000.00")] * 3
    assert [i.due_date_label for i in plan.installments] == ["DOP", "DOP + 1 month", "DOP + 2 months"]


def test_configure_plan_applies_validity_discount(db, catalog, course):
    plan = plan_store.configure_plan(db, catalog, course.course_id, "6 months", 3)
    assert plan.total_amount == Decimal("5400.00")
    assert plan.discount == Decimal("10.00")


def test_configure_plan_unknown_course_and_validity(db, catalog, course):
    with pytest.raises(CourseNotFound):
        plan_store.configure_plan(db, catalog, 9999, "3 months", 3)
    with pytest.raises(SubscriptionNotFound):
        plan_store.configure_plan(db, catalog, course.course_id, "24 months", 3)


def test_upsert_replaces_in_place(db, course, three_month_plan):
    entries = [{"amount": Decimal("1500.00")}, {"amount": Decimal("1500.00")}]
    updated = plan_store.upsert_plan(db, course.course_id, "3 months", entries, Decimal("3000.00"))

    assert updated.plan_id == three_month_plan.plan_id
    assert updated.number_of_installments == 2
    assert [i.amount for i in updated.installments] == [Decimal("1500.00"), Decimal("1500.00")]
    assert len(plan_store.list_plans(db, course.course_id)) == 1


def test_upsert_does_not_touch_enrolled_snapshot(db, course, three_month_plan):
    ledger = user_ledger.enroll(db, 7, course.course_id, three_month_plan)

    plan_store.upsert_plan(
        db, course.course_id, "3 months",
        [{"amount": Decimal("3000.00")}], Decimal("3000.00"),
    )

    db.refresh(ledger)
    assert ledger.plan_snapshot["numberOfInstallments"] == 3
    assert [i["amount"] for i in ledger.plan_snapshot["installments"]] == ["1000.00"] * 3


def test_get_plan_missing(db, course):
    with pytest.raises(PlanNotFound):
        plan_store.get_plan(db, course.course_id, "3 months")


def test_delete_plan_refused_while_enrolled(db, course, three_month_plan):
    user_ledger.enroll(db, 7, course.course_id, three_month_plan)
    with pytest.raises(PlanInUse):
        plan_store.delete_plan(db, three_month_plan.plan_id)


def test_delete_unused_plan(db, course, three_month_plan):
    plan_store.delete_plan(db, three_month_plan.plan_id)
    assert plan_store.list_plans(db, course.course_id) == []


def test_minimum_installment_read_from_settings(db, catalog, course):
    db.add(SystemSetting(key="MIN_INSTALLMENT_AMOUNT", value="1500"))
    db.commit()

    with pytest.raises(InstallmentTooSmall):
        plan_store.configure_plan(db, catalog, course.course_id, "3 months", 3)


def test_resync_reprices_after_validity_change(db, catalog, course, three_month_plan):
    validity = next(v for v in course.validities if v.plan_label == "3 months")
    validity.price = Decimal("3300.00")
    db.commit()

    [plan] = plan_store.resync_course_plans(db, catalog, course.course_id)
    assert plan.total_amount == Decimal("3300.00")
    assert [i.amount for i in plan.installments] == [Decimal("1100.00")] * 3


def test_plan_statistics(db, course, three_month_plan):
    user_ledger.enroll(db, 1, course.course_id, three_month_plan)
    user_ledger.enroll(db, 2, course.course_id, three_month_plan)
    user_ledger.record_payment(db, 1, course.course_id, 0, Decimal("1000.00"), order_id="order_a")

    stats = plan_store.plan_statistics(db, course.course_id)
    assert stats["total_plans"] == 1
    assert stats["plan_types"] == ["3 months"]
    assert stats["enrolled_users"] == 2
    assert stats["active_enrollments"] == 2
    assert stats["total_revenue"] == Decimal("1000.00")
    assert stats["pending_revenue"] == Decimal("5000.00")
