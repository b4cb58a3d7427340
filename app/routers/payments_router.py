from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session
from starlette import status
from starlette.concurrency import run_in_threadpool

from app.utils.database import get_db
from app.core.dependencies import get_gateway, get_course_catalog, get_access_sink
from app.services import payment_reconciler
from app.services.collaborators import CourseCatalog, CourseAccessSink
from app.services.gateway_client import RazorpayGateway
from app.schemas.payment_schema import (
    OrderCreate,
    OrderOut,
    OrderCreatedOut,
    OrderListOut,
    PaidOrdersOut,
    CheckoutVerify,
    PaymentResultOut,
    AlertOut,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


# =================================================
# 🔹 ORDERS
# =================================================
@router.post("/orders", response_model=OrderCreatedOut, status_code=status.HTTP_201_CREATED)
def create_order(
        payload: OrderCreate,
        db: Session = Depends(get_db),
        gateway: RazorpayGateway = Depends(get_gateway),
        catalog: CourseCatalog = Depends(get_course_catalog),
):
    order = payment_reconciler.create_payment_order(
        db,
        gateway,
        catalog,
        user_id=payload.user_id,
        course_id=payload.course_id,
        payment_mode=payload.payment_mode,
        plan_type=payload.plan_type,
        installment_index=payload.installment_index,
    )
    return {"success": True, "key_id": gateway.key_id, "order": order}


@router.get("/orders/paid", response_model=PaidOrdersOut)
def paid_orders(course_id: Optional[int] = None, db: Session = Depends(get_db)):
    orders, fixed = payment_reconciler.list_paid_orders(db, course_id)
    return {"orders": orders, "fixed_count": fixed}


@router.get("/orders/{order_id}", response_model=OrderOut)
def order_status(order_id: str, db: Session = Depends(get_db)):
    return payment_reconciler.get_order(db, order_id)


@router.get("/users/{user_id}/orders", response_model=OrderListOut)
def user_orders(
        user_id: int,
        status: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        db: Session = Depends(get_db),
):
    return payment_reconciler.list_user_orders(db, user_id, status=status, page=page, limit=limit)


# =================================================
# 🔹 GATEWAY CALLBACKS
# =================================================
@router.post("/webhook", response_model=PaymentResultOut)
async def razorpay_webhook(
        request: Request,
        x_razorpay_signature: Optional[str] = Header(None),
        db: Session = Depends(get_db),
        gateway: RazorpayGateway = Depends(get_gateway),
        access_sink: CourseAccessSink = Depends(get_access_sink),
):
    # signature is computed over the exact bytes received
    raw_body = await request.body()
    return await run_in_threadpool(
        payment_reconciler.record_gateway_payment,
        db,
        gateway,
        raw_body,
        x_razorpay_signature,
        access_sink=access_sink,
    )


@router.post("/verify", response_model=PaymentResultOut)
def verify_checkout(
        payload: CheckoutVerify,
        db: Session = Depends(get_db),
        gateway: RazorpayGateway = Depends(get_gateway),
        access_sink: CourseAccessSink = Depends(get_access_sink),
):
    return payment_reconciler.verify_checkout_signature(
        db,
        gateway,
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
        access_sink=access_sink,
    )


# =================================================
# 🔹 RECONCILE ALERTS
# =================================================
@router.get("/alerts", response_model=List[AlertOut])
def list_alerts(resolved: Optional[bool] = None, db: Session = Depends(get_db)):
    return payment_reconciler.list_alerts(db, resolved)


@router.post("/alerts/{alert_id}/resolve", response_model=AlertOut)
def resolve_alert(alert_id: int, db: Session = Depends(get_db)):
    return payment_reconciler.resolve_alert(db, alert_id)
