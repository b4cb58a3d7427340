import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core import config
from app.core.errors import PlanNotFound, PlanInUse
from app.models.installment_plan_model import InstallmentPlan, PlanInstallment
from app.models.system_settings_model import get_setting
from app.models.user_ledger_model import UserLedger, LedgerPayment
from app.services.collaborators import CourseCatalog
from app.utils.installment_calculations import (
    money,
    build_schedule,
    parse_plan_duration,
    due_label,
)

logger = logging.getLogger(__name__)


def minimum_installment_amount(db: Session) -> Decimal:
    return money(get_setting(db, "MIN_INSTALLMENT_AMOUNT", str(config.MIN_INSTALLMENT_AMOUNT)))


def _schedule_rows(schedule_entries) -> list[PlanInstallment]:
    rows = []
    for i, entry in enumerate(schedule_entries):
        offset = entry.get("due_date_offset")
        offset = i if offset is None else int(offset)
        rows.append(
            PlanInstallment(
                installment_index=i,
                amount=money(entry["amount"]),
                due_date_offset=offset,
                due_date_label=entry.get("due_date_label") or due_label(offset),
                is_paid=False,
            )
        )
    return rows


def upsert_plan(
        db: Session,
        course_id: int,
        plan_type: str,
        schedule_entries,
        total_amount,
        discount=0,
) -> InstallmentPlan:
    """
    Replace the installments/total/discount of (course_id, plan_type) in
    place, or create it. Enrolled users are unaffected: they own a snapshot.
    """
    total = money(total_amount)
    plan = (
        db.query(InstallmentPlan)
        .filter(InstallmentPlan.course_id == course_id, InstallmentPlan.plan_type == plan_type)
        .first()
    )

    if plan:
        plan.installments.clear()
        db.flush()  # old rows must be gone before the unique (plan_id, index) rows return
        created = False
    else:
        plan = InstallmentPlan(course_id=course_id, plan_type=plan_type)
        db.add(plan)
        created = True

    plan.installments.extend(_schedule_rows(schedule_entries))
    plan.number_of_installments = len(schedule_entries)
    plan.total_amount = total
    plan.remaining_amount = total
    plan.discount = money(discount or 0)
    plan.status = "pending"

    db.commit()
    db.refresh(plan)

    logger.info(
        "%s installment plan %s course=%s type=%s n=%s total=%s",
        "Created" if created else "Updated",
        plan.plan_id, course_id, plan_type, plan.number_of_installments, total,
    )
    return plan


def get_plan(db: Session, course_id: int, plan_type: str) -> InstallmentPlan:
    plan = (
        db.query(InstallmentPlan)
        .filter(InstallmentPlan.course_id == course_id, InstallmentPlan.plan_type == plan_type)
        .first()
    )
    if not plan:
        raise PlanNotFound(f"Installment plan '{plan_type}' not found for course {course_id}")
    return plan


def get_plan_by_id(db: Session, plan_id: int) -> InstallmentPlan:
    plan = db.query(InstallmentPlan).filter(InstallmentPlan.plan_id == plan_id).first()
    if not plan:
        raise PlanNotFound(f"Installment plan {plan_id} not found")
    return plan


def list_plans(db: Session, course_id: int) -> list[InstallmentPlan]:
    return (
        db.query(InstallmentPlan)
        .filter(InstallmentPlan.course_id == course_id)
        .order_by(InstallmentPlan.plan_id.asc())
        .all()
    )


def configure_plan(
        db: Session,
        catalog: CourseCatalog,
        course_id: int,
        plan_type: str,
        number_of_installments: int,
        discount_percent=None,
) -> InstallmentPlan:
    """
    Admin action: price a plan from the course's subscription validity and
    store it. `discount_percent` overrides the validity's own discount.
    """
    validity = catalog.get_subscription_validity(course_id, plan_type)
    discount = validity["discount_percent"] if discount_percent is None else discount_percent

    months = validity.get("months") or parse_plan_duration(plan_type)

    entries = build_schedule(
        price=validity["price"],
        discount_percent=discount,
        tax_percent=validity["tax_percent"],
        handling_fee_percent=validity["handling_fee_percent"],
        number_of_installments=number_of_installments,
        plan_duration_months=months,
        minimum_installment_amount=minimum_installment_amount(db),
    )
    total = money(sum((e["amount"] for e in entries), Decimal("0")))

    return upsert_plan(db, course_id, plan_type, entries, total, discount)


def resync_course_plans(db: Session, catalog: CourseCatalog, course_id: int) -> list[InstallmentPlan]:
    """Re-price every plan of a course after its validities/charges changed."""
    updated = []
    for plan in list_plans(db, course_id):
        updated.append(
            configure_plan(
                db,
                catalog,
                course_id,
                plan.plan_type,
                plan.number_of_installments,
                discount_percent=plan.discount,
            )
        )
    return updated


def delete_plan(db: Session, plan_id: int) -> None:
    plan = get_plan_by_id(db, plan_id)

    in_use = db.query(UserLedger).filter(UserLedger.installment_plan_id == plan_id).count()
    if in_use:
        raise PlanInUse(f"Installment plan {plan_id} is referenced by {in_use} enrollment(s)")

    db.delete(plan)
    db.commit()
    logger.info("Deleted installment plan %s", plan_id)


def plan_statistics(db: Session, course_id: int) -> dict:
    plans = list_plans(db, course_id)

    ledgers = db.query(UserLedger).filter(UserLedger.course_id == course_id).all()

    collected = (
        db.query(func.coalesce(func.sum(LedgerPayment.amount), 0))
        .join(UserLedger, UserLedger.ledger_id == LedgerPayment.ledger_id)
        .filter(UserLedger.course_id == course_id, LedgerPayment.status == "paid")
        .scalar()
    )

    return {
        "course_id": course_id,
        "total_plans": len(plans),
        "plan_types": sorted({p.plan_type for p in plans}),
        "enrolled_users": len(ledgers),
        "completed_enrollments": sum(1 for l in ledgers if l.status == "completed"),
        "active_enrollments": sum(1 for l in ledgers if l.status == "pending"),
        "defaulted_enrollments": sum(1 for l in ledgers if l.status == "defaulted"),
        "total_revenue": money(collected),
        "pending_revenue": money(sum((money(l.remaining_amount) for l in ledgers), Decimal("0"))),
    }
