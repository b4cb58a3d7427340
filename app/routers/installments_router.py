from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from app.utils.database import get_db
from app.core.dependencies import get_course_catalog
from app.core.errors import InvalidPrice
from app.services import plan_store, user_ledger, installment_service
from app.services.collaborators import CourseCatalog
from app.utils.installment_calculations import money, build_schedule, calculate_payment_charges
from app.schemas.installment_schema import (
    ScheduleRequest,
    ScheduleOut,
    ChargesRequest,
    ChargesOut,
    PlanConfigure,
    PlanUpsert,
    PlanOut,
    PlanStatsOut,
    EnrollRequest,
    LedgerOut,
    BalanceOut,
    TimelineOut,
    AccessOut,
    SweepOut,
)

router = APIRouter(prefix="/installments", tags=["Installments"])


# =================================================
# 🔹 PRICING
# =================================================
@router.post("/schedule", response_model=ScheduleOut)
def preview_schedule(payload: ScheduleRequest, db: Session = Depends(get_db)):
    entries = build_schedule(
        price=payload.price,
        discount_percent=payload.discount_percent,
        tax_percent=payload.tax_percent,
        handling_fee_percent=payload.handling_fee_percent,
        number_of_installments=payload.number_of_installments,
        plan_duration_months=payload.plan_duration_months,
        minimum_installment_amount=plan_store.minimum_installment_amount(db),
    )
    return {
        "total_amount": money(sum((e["amount"] for e in entries), Decimal("0"))),
        "number_of_installments": len(entries),
        "installments": entries,
    }


@router.post("/charges", response_model=ChargesOut)
def calculate_charges(payload: ChargesRequest):
    return calculate_payment_charges(
        base_price=payload.base_price,
        discount_percent=payload.discount_percent,
        tax_percent=payload.tax_percent,
        handling_fee_percent=payload.handling_fee_percent,
        number_of_installments=payload.number_of_installments,
    )


# =================================================
# 🔹 PLANS
# =================================================
@router.post("/plans/configure", response_model=PlanOut, status_code=status.HTTP_201_CREATED)
def configure_plan(
        payload: PlanConfigure,
        db: Session = Depends(get_db),
        catalog: CourseCatalog = Depends(get_course_catalog),
):
    return plan_store.configure_plan(
        db,
        catalog,
        payload.course_id,
        payload.plan_type,
        payload.number_of_installments,
        discount_percent=payload.discount_percent,
    )


@router.put("/plans", response_model=PlanOut)
def upsert_plan(
        payload: PlanUpsert,
        db: Session = Depends(get_db),
        catalog: CourseCatalog = Depends(get_course_catalog),
):
    catalog.get_course(payload.course_id)

    entries = [e.model_dump() for e in payload.installments]
    total = money(sum((money(e["amount"]) for e in entries), Decimal("0")))
    if total != money(payload.total_amount):
        raise InvalidPrice(
            f"total_amount {money(payload.total_amount)} does not match installments sum {total}",
            field="total_amount",
        )

    return plan_store.upsert_plan(
        db,
        payload.course_id,
        payload.plan_type.strip(),
        entries,
        payload.total_amount,
        payload.discount,
    )


@router.get("/plans", response_model=List[PlanOut])
def list_plans(course_id: int, db: Session = Depends(get_db)):
    return plan_store.list_plans(db, course_id)


@router.get("/plans/{course_id}/{plan_type}", response_model=PlanOut)
def get_plan(course_id: int, plan_type: str, db: Session = Depends(get_db)):
    return plan_store.get_plan(db, course_id, plan_type)


@router.delete("/plans/{plan_id}")
def delete_plan(plan_id: int, db: Session = Depends(get_db)):
    plan_store.delete_plan(db, plan_id)
    return {"message": "deleted", "plan_id": plan_id}


@router.post("/plans/resync/{course_id}", response_model=List[PlanOut])
def resync_plans(
        course_id: int,
        db: Session = Depends(get_db),
        catalog: CourseCatalog = Depends(get_course_catalog),
):
    return plan_store.resync_course_plans(db, catalog, course_id)


@router.get("/statistics/{course_id}", response_model=PlanStatsOut)
def plan_statistics(course_id: int, db: Session = Depends(get_db)):
    return plan_store.plan_statistics(db, course_id)


# =================================================
# 🔹 ENROLLMENT / LEDGER
# =================================================
@router.post("/enroll", response_model=LedgerOut, status_code=status.HTTP_201_CREATED)
def enroll(payload: EnrollRequest, db: Session = Depends(get_db)):
    return installment_service.enroll_user(db, payload.user_id, payload.course_id, payload.plan_type.strip())


@router.get("/ledgers/{user_id}", response_model=List[LedgerOut])
def list_ledgers(user_id: int, db: Session = Depends(get_db)):
    return user_ledger.list_user_ledgers(db, user_id)


@router.get("/balance/{user_id}/{course_id}", response_model=BalanceOut)
def outstanding_balance(user_id: int, course_id: int, db: Session = Depends(get_db)):
    return installment_service.get_balance(db, user_id, course_id)


@router.get("/timeline/{user_id}/{course_id}", response_model=TimelineOut)
def timeline(user_id: int, course_id: int, db: Session = Depends(get_db)):
    return installment_service.get_timeline(db, user_id, course_id)


@router.get("/access/{user_id}/{course_id}", response_model=AccessOut)
def check_access(user_id: int, course_id: int, db: Session = Depends(get_db)):
    return installment_service.check_access(db, user_id, course_id)


@router.post("/sweep", response_model=SweepOut)
def sweep_statuses(db: Session = Depends(get_db)):
    return user_ledger.sweep_ledger_statuses(db)
