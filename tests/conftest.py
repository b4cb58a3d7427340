import hashlib
import hmac
import json
import os
from decimal import Decimal

# must be set before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"

import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401  registers every table on Base.metadata
from app.utils.database import Base, SessionLocal, engine
from app.models.course_model import Course, CourseValidity
from app.services import plan_store
from app.services.collaborators import CourseAccessSink, SqlCourseCatalog
from app.services.gateway_client import RazorpayGateway, to_subunits

WEBHOOK_SECRET = os.environ["RAZORPAY_WEBHOOK_SECRET"]
KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]


class FakeGateway(RazorpayGateway):
    """Real signature checks, canned order creation."""

    def __init__(self):
        super().__init__("rzp_test_key", KEY_SECRET, WEBHOOK_SECRET, "INR")
        self.created = []

    def create_order(self, amount, currency=None, receipt=None, notes=None):
        order = {
            "id": f"order_test{len(self.created) + 1:04d}",
            "amount": to_subunits(amount),
            "currency": currency or self.currency,
            "receipt": receipt,
            "notes": notes or {},
            "status": "created",
        }
        self.created.append(order)
        return order


class RecordingAccessSink(CourseAccessSink):
    def __init__(self):
        self.grants = []

    def grant_course_access(self, user_id, course_id, payment_mode="installment"):
        self.grants.append((user_id, course_id, payment_mode))


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def webhook_body(order_id, amount, event="payment.captured", payment_id="pay_test0001") -> bytes:
    return json.dumps(
        {
            "event": event,
            "payload": {
                "payment": {
                    "entity": {
                        "id": payment_id,
                        "order_id": order_id,
                        "amount": to_subunits(amount),
                        "status": "captured" if event == "payment.captured" else "failed",
                    }
                }
            },
        }
    ).encode()


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def access_sink():
    return RecordingAccessSink()


@pytest.fixture
def catalog(db):
    return SqlCourseCatalog(db)


@pytest.fixture
def course(db):
    c = Course(
        title="Quantitative Aptitude",
        price=Decimal("6000.00"),
        gst_percent=Decimal("0"),
        internet_handling_percent=Decimal("0"),
    )
    c.validities.append(
        CourseValidity(plan_label="3 months", months=3, price=Decimal("3000.00"), discount_percent=Decimal("0"))
    )
    c.validities.append(
        CourseValidity(plan_label="6 months", months=6, price=Decimal("6000.00"), discount_percent=Decimal("10"))
    )
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def three_month_plan(db, catalog, course):
    """3 x 1000.00 on the "3 months" validity."""
    return plan_store.configure_plan(db, catalog, course.course_id, "3 months", 3)


@pytest.fixture
def client(db, gateway, access_sink):
    from main import app as fastapi_app
    from app.core.dependencies import get_gateway, get_access_sink

    fastapi_app.dependency_overrides[get_gateway] = lambda: gateway
    fastapi_app.dependency_overrides[get_access_sink] = lambda: access_sink
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()
