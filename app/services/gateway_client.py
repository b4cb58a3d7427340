"""
Razorpay access, constructed explicitly and handed to whoever needs it.

The SDK client is created on first use so that importing the app, or running
tests with a fake gateway, never needs live credentials.
"""
import hmac
import hashlib
import logging
import threading
from decimal import Decimal

import razorpay

from app.core import config
from app.utils.installment_calculations import money

logger = logging.getLogger(__name__)


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signature_matches(secret: str, message: bytes, signature: str) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(hmac_sha256_hex(secret, message), signature)


def to_subunits(amount) -> int:
    """₹ -> paise."""
    return int((money(amount) * 100).to_integral_value())


def from_subunits(amount) -> Decimal:
    """paise -> ₹."""
    return money(Decimal(str(amount)) / 100)


class RazorpayGateway:
    def __init__(self, key_id: str, key_secret: str, webhook_secret: str, currency: str = "INR"):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.currency = currency
        self._client = None
        self._lock = threading.Lock()

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def create_order(self, amount, currency: str = None, receipt: str = None, notes: dict = None) -> dict:
        data = {
            "amount": to_subunits(amount),
            "currency": currency or self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        order = self.client.order.create(data=data)
        logger.info("Gateway order %s created amount=%s %s", order.get("id"), amount, data["currency"])
        return order

    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        return signature_matches(self.webhook_secret, raw_body, signature)

    def verify_checkout_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signature_matches(self.key_secret, f"{order_id}|{payment_id}".encode(), signature)


def gateway_from_config() -> RazorpayGateway:
    return RazorpayGateway(
        key_id=config.RAZORPAY_KEY_ID,
        key_secret=config.RAZORPAY_KEY_SECRET,
        webhook_secret=config.RAZORPAY_WEBHOOK_SECRET,
        currency=config.PAYMENT_CURRENCY,
    )
