"""
Read-only adapter over the pre-ledger installment array stored on a course
purchase record. Only consulted when a (user, course) pair has no UserLedger;
nothing here ever writes.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from dateutil import parser as date_parser
from sqlalchemy.orm import Session

from app.models.course_purchase_model import CoursePurchase
from app.services.ledger_view import LedgerView, InstallmentState, resolve_anchor
from app.utils.installment_calculations import money

logger = logging.getLogger(__name__)


def _parse_paid_date(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        dt = date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        logger.warning("Unreadable legacy paidDate %r", value)
        return None
    # stored naive UTC, like every DateTime column
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _is_paid(value) -> bool:
    # some old rows carry the gateway order id instead of a boolean
    if isinstance(value, str):
        return value.lower() == "true" or value.startswith("order_")
    return value is True


def _ordered_entries(raw: list) -> list[dict]:
    """Sort by installmentNumber (1-based) when present, else keep array order."""
    if all(isinstance(e, dict) and e.get("installmentNumber") for e in raw):
        return sorted(raw, key=lambda e: int(e["installmentNumber"]))
    return [e for e in raw if isinstance(e, dict)]


def find_legacy_purchase(db: Session, user_id: int, course_id: int) -> Optional[CoursePurchase]:
    return (
        db.query(CoursePurchase)
        .filter(
            CoursePurchase.user_id == user_id,
            CoursePurchase.course_id == course_id,
            CoursePurchase.payment_type == "installment",
        )
        .first()
    )


def legacy_view(purchase: CoursePurchase) -> Optional[LedgerView]:
    raw = purchase.installments or []
    if not raw:
        return None

    entries = _ordered_entries(raw)
    if not entries:
        logger.warning(
            "Legacy installment array has no readable entries user=%s course=%s",
            purchase.user_id, purchase.course_id,
        )
        return None

    installments = []
    for idx, entry in enumerate(entries):
        amount = money(entry.get("amount"))
        is_paid = _is_paid(entry.get("isPaid"))
        installments.append(
            InstallmentState(
                index=idx,
                amount=amount,
                is_paid=is_paid,
                paid_amount=amount if is_paid else Decimal("0.00"),
                paid_at=_parse_paid_date(entry.get("paidDate")) if is_paid else None,
            )
        )

    first = installments[0]
    return LedgerView(
        source="legacy",
        user_id=purchase.user_id,
        course_id=purchase.course_id,
        plan_type=None,
        total_amount=money(sum((i.amount for i in installments), Decimal("0"))),
        anchor_date=resolve_anchor(first.paid_at if first.is_paid else None, purchase.purchase_date),
        installments=installments,
        status="completed" if all(i.is_paid for i in installments) else "pending",
    )


def load_legacy_view(db: Session, user_id: int, course_id: int) -> Optional[LedgerView]:
    purchase = find_legacy_purchase(db, user_id, course_id)
    if not purchase:
        return None

    view = legacy_view(purchase)
    if view is not None:
        logger.info("Serving legacy installment record user=%s course=%s", user_id, course_id)
    return view
