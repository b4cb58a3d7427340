"""
Bridges the gateway's view of a payment (PaymentOrder) to the user's ledger.

Two layers of replay protection:
  * order layer  - conditional UPDATE, only an unpaid order can become paid
  * ledger layer - conditional INSERT, only an unpaid index takes a payment

Once an order is paid it stays paid. A failed order still accepts a capture,
since payment.failed describes one attempt and the customer may retry on the
same gateway order. Any ledger-side failure after the capture is persisted as
a ReconcileAlert instead of being rolled back into the order.
"""
import json
import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    InstallmentError,
    InvalidSignature,
    MalformedWebhook,
    OrderNotFound,
    AlertNotFound,
    LedgerNotFound,
    PlanNotFound,
    IndexOutOfRange,
    InstallmentAlreadyPaid,
    PaymentModeMismatch,
    RECONCILE_FAILED,
)
from app.models.payment_order_model import PaymentOrder
from app.models.reconcile_alert_model import ReconcileAlert
from app.services import installment_service, user_ledger
from app.services.collaborators import CourseCatalog, CourseAccessSink
from app.services.gateway_client import RazorpayGateway, from_subunits
from app.utils.installment_calculations import money, utc_now, compute_total_amount

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("created", "partial")
# payment.failed closes one attempt, a capture on the same order still counts
CAPTURABLE_STATUSES = OPEN_STATUSES + ("failed",)
PAYMENT_MODES = ("full", "installment")


# =================================================
# 🔹 WEBHOOK PARSING
# =================================================
def parse_webhook(raw_body: bytes) -> tuple[str, dict]:
    """Return (event, payment entity) or raise MalformedWebhook."""
    try:
        body = json.loads(raw_body or b"")
    except (ValueError, UnicodeDecodeError):
        raise MalformedWebhook("Webhook body is not valid JSON")

    if not isinstance(body, dict) or not body.get("event"):
        raise MalformedWebhook("Webhook is missing 'event'", field="event")

    payload = body.get("payload")
    if not isinstance(payload, dict):
        raise MalformedWebhook("Webhook is missing 'payload'", field="payload")

    entity = (payload.get("payment") or {}).get("entity")
    if not isinstance(entity, dict):
        raise MalformedWebhook("Webhook is missing 'payload.payment.entity'", field="payload.payment.entity")

    if not entity.get("order_id"):
        raise MalformedWebhook("Payment entity has no order_id", field="order_id")

    amount = entity.get("amount")
    if amount is not None:
        try:
            value = None if isinstance(amount, bool) else Decimal(str(amount))
        except (InvalidOperation, ValueError):
            value = None
        if value is None or not value.is_finite() or value < 0:
            raise MalformedWebhook(f"Payment entity has an invalid amount {amount!r}", field="amount")

    return body["event"], entity


def record_gateway_payment(
        db: Session,
        gateway: RazorpayGateway,
        raw_body: bytes,
        signature: Optional[str],
        access_sink: Optional[CourseAccessSink] = None,
) -> dict:
    """Entry point for the gateway webhook. Signature is checked before anything is parsed."""
    if not gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("Rejected webhook with invalid signature")
        raise InvalidSignature("Invalid webhook signature")

    event, entity = parse_webhook(raw_body)
    order_id = entity["order_id"]

    if event == "payment.captured":
        amount = from_subunits(entity["amount"]) if entity.get("amount") is not None else None
        return capture_payment(
            db,
            order_id,
            payment_id=entity.get("id"),
            captured_amount=amount,
            access_sink=access_sink,
            event=event,
        )

    if event == "payment.failed":
        return mark_failed(db, order_id, payment_id=entity.get("id"), event=event)

    logger.info("Webhook event %s for order %s acknowledged without action", event, order_id)
    return {"applied": False, "event": event, "order_id": order_id}


# =================================================
# 🔹 ORDER TRANSITIONS
# =================================================
def _find_order(db: Session, order_id: str) -> PaymentOrder:
    order = db.query(PaymentOrder).filter(PaymentOrder.order_id == order_id).first()
    if not order:
        raise OrderNotFound(f"Order {order_id} not found")
    return order


def _transition(db: Session, order_id: str, values: dict, from_statuses=OPEN_STATUSES) -> bool:
    """from_statuses -> new status, as one conditional UPDATE. False when someone else got there first."""
    stmt = (
        update(PaymentOrder)
        .where(PaymentOrder.order_id == order_id, PaymentOrder.status.in_(from_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        db.rollback()
        return False
    db.commit()
    return True


def capture_payment(
        db: Session,
        order_id: str,
        payment_id: Optional[str] = None,
        captured_amount=None,
        access_sink: Optional[CourseAccessSink] = None,
        event: str = "payment.captured",
) -> dict:
    order = _find_order(db, order_id)
    out = {"applied": False, "event": event, "order_id": order_id}

    if order.status not in CAPTURABLE_STATUSES:
        logger.info("Order %s already %s, capture ignored", order_id, order.status)
        out["status"] = order.status
        return out

    if order.status == "failed":
        logger.warning("Order %s was marked failed, applying later capture %s", order_id, payment_id)

    is_installment = order.payment_mode == "installment"
    paid_at = utc_now()
    values = {"status": "paid", "paid_at": paid_at}
    if payment_id:
        values["payment_id"] = payment_id
    if order.installment_index is not None:
        values["installment_is_paid"] = True

    if not _transition(db, order_id, values, from_statuses=CAPTURABLE_STATUSES):
        logger.info("Order %s was captured concurrently, nothing to do", order_id)
        out["status"] = "paid"
        return out

    db.refresh(order)
    out.update(applied=True, status="paid")

    amount = money(order.amount)
    if captured_amount is not None and money(captured_amount) != amount:
        logger.warning(
            "Captured amount %s differs from order %s amount %s; recording captured amount",
            captured_amount, order_id, amount,
        )
        amount = money(captured_amount)

    logger.info(
        "Order %s paid user=%s course=%s mode=%s amount=%s",
        order_id, order.user_id, order.course_id, order.payment_mode, amount,
    )

    # order is committed from here on; failures below never undo it
    try:
        if is_installment:
            ledger, ledger_applied = user_ledger.record_payment(
                db,
                order.user_id,
                order.course_id,
                order.installment_index,
                amount,
                order_id=order.order_id,
                paid_at=paid_at,
            )
            out["ledger_applied"] = ledger_applied
            out["remaining_amount"] = money(ledger.remaining_amount)

            if user_ledger.is_fully_paid(ledger):
                out["access_granted"] = True
                if access_sink is not None:
                    access_sink.grant_course_access(order.user_id, order.course_id, "installment")
        else:
            out["access_granted"] = True
            if access_sink is not None:
                access_sink.grant_course_access(order.user_id, order.course_id, "full")
    except (InstallmentError, SQLAlchemyError) as exc:
        db.rollback()
        alert = _raise_alert(db, order, exc)
        out.update(reconciled=False, alert=alert.alert_id)
        return out

    out["reconciled"] = True
    return out


def mark_failed(db: Session, order_id: str, payment_id: Optional[str] = None, event: str = "payment.failed") -> dict:
    order = _find_order(db, order_id)
    out = {"applied": False, "event": event, "order_id": order_id}

    if order.status not in OPEN_STATUSES:
        out["status"] = order.status
        return out

    values = {"status": "failed"}
    if payment_id:
        values["payment_id"] = payment_id

    if _transition(db, order_id, values):
        logger.warning("Order %s failed user=%s course=%s", order_id, order.user_id, order.course_id)
        out.update(applied=True, status="failed")
    else:
        db.refresh(order)
        out["status"] = order.status
    return out


def _raise_alert(db: Session, order: PaymentOrder, exc: Exception) -> ReconcileAlert:
    detail = exc.message if isinstance(exc, InstallmentError) else str(exc)
    alert = ReconcileAlert(
        code=RECONCILE_FAILED,
        order_id=order.order_id,
        user_id=order.user_id,
        course_id=order.course_id,
        installment_index=order.installment_index,
        detail=f"{type(exc).__name__}: {detail}",
        resolved=False,
    )
    db.add(alert)
    db.commit()
    db.refresh(alert)

    logger.error(
        "%s order=%s user=%s course=%s index=%s: %s",
        RECONCILE_FAILED, order.order_id, order.user_id, order.course_id, order.installment_index, detail,
    )
    return alert


# =================================================
# 🔹 CHECKOUT
# =================================================
def verify_checkout_signature(
        db: Session,
        gateway: RazorpayGateway,
        order_id: str,
        payment_id: str,
        signature: str,
        access_sink: Optional[CourseAccessSink] = None,
) -> dict:
    """Client-side confirmation after checkout; lands on the same capture path as the webhook."""
    if not gateway.verify_checkout_signature(order_id, payment_id, signature):
        logger.warning("Checkout signature mismatch for order %s", order_id)
        raise InvalidSignature("Invalid payment signature")

    return capture_payment(db, order_id, payment_id=payment_id, access_sink=access_sink, event="checkout.verified")


def _full_payment_amount(catalog: CourseCatalog, course_id: int, plan_type: Optional[str]):
    if plan_type:
        validity = catalog.get_subscription_validity(course_id, plan_type)
        return compute_total_amount(
            validity["price"],
            validity["discount_percent"],
            validity["tax_percent"],
            validity["handling_fee_percent"],
        )
    return money(catalog.get_course(course_id)["price"])


def create_payment_order(
        db: Session,
        gateway: RazorpayGateway,
        catalog: CourseCatalog,
        user_id: int,
        course_id: int,
        payment_mode: str,
        plan_type: Optional[str] = None,
        installment_index: Optional[int] = None,
) -> PaymentOrder:
    """
    Start a payment attempt. Installment amounts always come from the user's
    ledger snapshot; index 0 without a ledger enrolls the user first.
    """
    if payment_mode not in PAYMENT_MODES:
        raise PaymentModeMismatch(f"Unknown payment mode '{payment_mode}'", field="payment_mode")

    catalog.get_course(course_id)
    ledger = user_ledger.find_ledger(db, user_id, course_id)

    plan_id = None
    total_installments = None
    installment_amount = None

    if payment_mode == "full":
        if ledger is not None:
            raise PaymentModeMismatch(
                f"User {user_id} pays course {course_id} in installments",
                field="payment_mode",
            )
        amount = _full_payment_amount(catalog, course_id, plan_type)
        installment_index = None
    else:
        if installment_index is None:
            raise IndexOutOfRange("installment_index is required for installment payments", field="installment_index")

        if ledger is None:
            if installment_index != 0:
                raise LedgerNotFound(
                    f"No installment enrollment for user {user_id} in course {course_id}; pay installment 1 first"
                )
            if not plan_type:
                raise PlanNotFound("plan_type is required to start an installment plan", field="plan_type")
            ledger = installment_service.enroll_user(db, user_id, course_id, plan_type)

        view = user_ledger.ledger_view(ledger)
        inst = view.installment(installment_index)
        if inst is None:
            raise IndexOutOfRange(
                f"Installment index {installment_index} outside [0, {len(view.installments)})",
                field="installment_index",
            )
        if inst.is_paid:
            raise InstallmentAlreadyPaid(f"Installment {installment_index + 1} is already paid")

        amount = inst.amount
        plan_type = view.plan_type
        plan_id = ledger.installment_plan_id
        total_installments = len(view.installments)
        installment_amount = inst.amount

    receipt = f"rcpt_{user_id}_{course_id}_{uuid.uuid4().hex[:10]}"
    notes = {
        "user_id": str(user_id),
        "course_id": str(course_id),
        "payment_mode": payment_mode,
    }
    if installment_index is not None:
        notes["installment_index"] = str(installment_index)

    gw_order = gateway.create_order(amount, receipt=receipt, notes=notes)

    order = PaymentOrder(
        order_id=gw_order["id"],
        amount=money(amount),
        currency=gw_order.get("currency") or gateway.currency,
        receipt=receipt,
        tracking_number=f"TRK{uuid.uuid4().hex[:12].upper()}",
        status="created",
        user_id=user_id,
        course_id=course_id,
        payment_mode=payment_mode,
        plan_type=plan_type,
        installment_plan_id=plan_id,
        installment_index=installment_index,
        total_installments=total_installments,
        installment_amount=installment_amount,
        installment_is_paid=False if installment_index is not None else None,
    )
    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info(
        "Payment order %s created user=%s course=%s mode=%s index=%s amount=%s",
        order.order_id, user_id, course_id, payment_mode, installment_index, order.amount,
    )
    return order


# =================================================
# 🔹 READ PATHS (with paid-flag repair)
# =================================================
def repair_paid_flags(db: Session, user_id: Optional[int] = None, order_id: Optional[str] = None) -> int:
    """
    status == paid but installment flag still false -> set it true. Only ever
    writes a constant, so concurrent runs cannot conflict.
    """
    stmt = (
        update(PaymentOrder)
        .where(
            PaymentOrder.status == "paid",
            PaymentOrder.installment_index.isnot(None),
            or_(PaymentOrder.installment_is_paid.is_(False), PaymentOrder.installment_is_paid.is_(None)),
        )
        .values(installment_is_paid=True)
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        stmt = stmt.where(PaymentOrder.user_id == user_id)
    if order_id is not None:
        stmt = stmt.where(PaymentOrder.order_id == order_id)

    fixed = db.execute(stmt).rowcount or 0
    db.commit()

    if fixed:
        logger.warning("Repaired installment paid flag on %s order(s) user=%s order=%s", fixed, user_id, order_id)
    return fixed


def get_order(db: Session, order_id: str) -> PaymentOrder:
    repair_paid_flags(db, order_id=order_id)
    return _find_order(db, order_id)


def list_user_orders(
        db: Session,
        user_id: int,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
) -> dict:
    repair_paid_flags(db, user_id=user_id)

    query = db.query(PaymentOrder).filter(PaymentOrder.user_id == user_id)
    if status:
        query = query.filter(PaymentOrder.status == status)

    total = query.count()
    page = max(page, 1)
    orders = (
        query.order_by(PaymentOrder.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "orders": orders,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def list_paid_orders(db: Session, course_id: Optional[int] = None) -> tuple[list[PaymentOrder], int]:
    """Admin listing of paid orders; returns (orders, repaired_count)."""
    fixed = repair_paid_flags(db)

    query = db.query(PaymentOrder).filter(PaymentOrder.status == "paid")
    if course_id is not None:
        query = query.filter(PaymentOrder.course_id == course_id)
    return query.order_by(PaymentOrder.paid_at.desc()).all(), fixed


# =================================================
# 🔹 RECONCILE ALERTS
# =================================================
def list_alerts(db: Session, resolved: Optional[bool] = None) -> list[ReconcileAlert]:
    query = db.query(ReconcileAlert)
    if resolved is not None:
        query = query.filter(ReconcileAlert.resolved == resolved)
    return query.order_by(ReconcileAlert.alert_id.desc()).all()


def resolve_alert(db: Session, alert_id: int) -> ReconcileAlert:
    alert = db.query(ReconcileAlert).filter(ReconcileAlert.alert_id == alert_id).first()
    if not alert:
        raise AlertNotFound(f"Alert {alert_id} not found")

    if not alert.resolved:
        alert.resolved = True
        alert.resolved_on = utc_now()
        db.commit()
        db.refresh(alert)
        logger.info("Reconcile alert %s resolved (order %s)", alert_id, alert.order_id)
    return alert
