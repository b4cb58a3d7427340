import re
from datetime import datetime, date, timezone
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Optional

from dateutil.relativedelta import relativedelta

from app.core.errors import (
    InvalidPrice,
    InvalidDiscountRange,
    InvalidInstallmentCount,
    InstallmentTooSmall,
)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def money(x) -> Decimal:
    """Always return 2-decimal Decimal with HALF_UP rounding."""
    if x is None:
        x = 0
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(dt, months: int):
    """
    dt + N calendar months; the day is clamped to the end of a shorter month
    (Jan 31 + 1 month => Feb 28/29).
    """
    return dt + relativedelta(months=int(months))


def as_date(dt) -> date:
    return dt.date() if isinstance(dt, datetime) else dt


def due_label(index: int) -> str:
    if index == 0:
        return "DOP"
    return f"DOP + {index} month{'s' if index > 1 else ''}"


def parse_plan_duration(plan_type: str) -> Optional[int]:
    """
    "6 months" -> 6, "12 months" -> 12.
    Labels without a leading month count (e.g. "custom") -> None.
    """
    m = re.match(r"\s*(\d+)", plan_type or "")
    return int(m.group(1)) if m else None


def _check_percent(value, field: str) -> Decimal:
    v = Decimal(str(value or 0))
    if v < 0 or v > HUNDRED:
        raise InvalidDiscountRange(f"{field} must be between 0 and 100", field=field)
    return v


def compute_total_amount(
        price,
        discount_percent=0,
        tax_percent=0,
        handling_fee_percent=0,
) -> Decimal:
    """
    discounted = price * (1 - discount%)
    total      = discounted * (1 + (tax% + handling%))

    Example:
      price=6000, discount=10, tax=0, fee=0 => 5400.00
    """
    price = Decimal(str(price if price is not None else 0))
    if price <= 0:
        raise InvalidPrice("price must be > 0", field="price")

    discount = _check_percent(discount_percent, "discount_percent")
    tax = _check_percent(tax_percent, "tax_percent")
    fee = _check_percent(handling_fee_percent, "handling_fee_percent")

    discounted = price * (1 - discount / HUNDRED)
    return money(discounted * (1 + (tax + fee) / HUNDRED))


def split_into_installments(
        total: Decimal,
        number_of_installments: int,
) -> list[Decimal]:
    """
    base      = floor(total / n) to cents
    remainder = total - base * n            (absorbed by installment #1)
    """
    n = int(number_of_installments)
    total = money(total)

    base = (total / n).quantize(CENT, rounding=ROUND_FLOOR)
    remainder = money(total - base * n)

    return [money(base + remainder) if i == 0 else base for i in range(n)]


def build_schedule(
        price,
        discount_percent=0,
        tax_percent=0,
        handling_fee_percent=0,
        number_of_installments: int = 1,
        plan_duration_months: Optional[int] = None,
        minimum_installment_amount=Decimal("50"),
) -> list[dict]:
    """
    Amortized schedule for one plan.

    Returns entries:
      {"index", "amount", "due_date_offset", "due_date_label"}

    sum(amount) == compute_total_amount(...) exactly; installment #1 carries
    the rounding remainder and is due at enrollment, #i at enrollment + i months.
    """
    total = compute_total_amount(price, discount_percent, tax_percent, handling_fee_percent)

    n = int(number_of_installments)
    if n < 1:
        raise InvalidInstallmentCount(
            "Number of installments must be at least 1",
            field="number_of_installments",
        )
    if plan_duration_months is not None and n > int(plan_duration_months):
        raise InvalidInstallmentCount(
            "Number of installments cannot exceed the selected plan duration "
            f"({plan_duration_months} months)",
            field="number_of_installments",
        )

    amounts = split_into_installments(total, n)

    minimum = money(minimum_installment_amount)
    if amounts[-1] < minimum:
        raise InstallmentTooSmall(
            f"Minimum installment amount is ₹{minimum}. "
            f"Reduce the number of installments (got ₹{amounts[-1]} per installment).",
            field="number_of_installments",
        )

    return [
        {
            "index": i,
            "amount": amount,
            "due_date_offset": i,
            "due_date_label": due_label(i),
        }
        for i, amount in enumerate(amounts)
    ]


def calculate_payment_charges(
        base_price,
        discount_percent=0,
        tax_percent=0,
        handling_fee_percent=0,
        number_of_installments: int = 1,
) -> dict:
    """Price breakdown shown before checkout."""
    total = compute_total_amount(base_price, discount_percent, tax_percent, handling_fee_percent)

    base_price = money(base_price)
    discount_value = money(base_price * Decimal(str(discount_percent or 0)) / HUNDRED)
    after_discount = money(base_price - discount_value)
    gst_amount = money(after_discount * Decimal(str(tax_percent or 0)) / HUNDRED)
    handling_charge = money(after_discount * Decimal(str(handling_fee_percent or 0)) / HUNDRED)

    n = int(number_of_installments or 1)
    if n < 1:
        raise InvalidInstallmentCount(
            "Number of installments must be at least 1",
            field="number_of_installments",
        )

    return {
        "base_price": base_price,
        "discount_percent": Decimal(str(discount_percent or 0)),
        "discount_value": discount_value,
        "tax_percent": Decimal(str(tax_percent or 0)),
        "tax_amount": gst_amount,
        "handling_fee_percent": Decimal(str(handling_fee_percent or 0)),
        "handling_charge": handling_charge,
        "total_amount": total,
        "number_of_installments": n,
        "installment_amounts": split_into_installments(total, n) if n > 1 else [],
    }
