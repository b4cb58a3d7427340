"""
Read paths used by the API: one lookup order everywhere, UserLedger first and
the legacy purchase array only when no ledger exists.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import LedgerNotFound
from app.models.user_ledger_model import UserLedger
from app.services import user_ledger, legacy_bridge, plan_store
from app.services.access_evaluator import evaluate_access
from app.services.ledger_view import LedgerView, summarize_balance, build_timeline
from app.utils.installment_calculations import utc_now


def resolve_view(db: Session, user_id: int, course_id: int) -> Optional[LedgerView]:
    ledger = user_ledger.find_ledger(db, user_id, course_id)
    if ledger:
        return user_ledger.ledger_view(ledger)
    return legacy_bridge.load_legacy_view(db, user_id, course_id)


def enroll_user(db: Session, user_id: int, course_id: int, plan_type: str) -> UserLedger:
    plan = plan_store.get_plan(db, course_id, plan_type)
    return user_ledger.enroll(db, user_id, course_id, plan)


def _require_view(db: Session, user_id: int, course_id: int) -> LedgerView:
    view = resolve_view(db, user_id, course_id)
    if view is None:
        raise LedgerNotFound(f"No installment enrollment for user {user_id} in course {course_id}")
    return view


def get_balance(db: Session, user_id: int, course_id: int) -> dict:
    return summarize_balance(_require_view(db, user_id, course_id))


def get_timeline(db: Session, user_id: int, course_id: int, now: Optional[datetime] = None) -> dict:
    return build_timeline(_require_view(db, user_id, course_id), now or utc_now())


def check_access(db: Session, user_id: int, course_id: int, now: Optional[datetime] = None) -> dict:
    return evaluate_access(resolve_view(db, user_id, course_id), now or utc_now())
