from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Literal


class OrderCreate(BaseModel):
    user_id: int
    course_id: int
    payment_mode: Literal["full", "installment"]
    plan_type: Optional[str] = None
    installment_index: Optional[int] = Field(None, ge=0)

    @field_validator("plan_type", mode="before")
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class InstallmentDetailsOut(BaseModel):
    installment_index: int
    total_installments: Optional[int] = None
    installment_amount: Optional[float] = None
    is_paid: bool


class OrderOut(BaseModel):
    order_id: str
    payment_id: Optional[str] = None
    amount: float
    currency: str
    receipt: Optional[str] = None
    tracking_number: Optional[str] = None
    status: str
    user_id: int
    course_id: int
    payment_mode: str
    plan_type: Optional[str] = None
    installment_details: Optional[InstallmentDetailsOut] = None
    paid_at: Optional[datetime] = None
    created_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderCreatedOut(BaseModel):
    success: bool = True
    key_id: str
    order: OrderOut


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    total: int
    page: int
    limit: int
    pages: int


class PaidOrdersOut(BaseModel):
    orders: List[OrderOut]
    fixed_count: int


class CheckoutVerify(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class PaymentResultOut(BaseModel):
    applied: bool
    event: str
    order_id: str
    status: Optional[str] = None
    reconciled: Optional[bool] = None
    ledger_applied: Optional[bool] = None
    remaining_amount: Optional[float] = None
    access_granted: Optional[bool] = None
    alert: Optional[int] = None


class AlertOut(BaseModel):
    alert_id: int
    code: str
    order_id: str
    user_id: Optional[int] = None
    course_id: Optional[int] = None
    installment_index: Optional[int] = None
    detail: Optional[str] = None
    resolved: bool
    resolved_on: Optional[datetime] = None
    created_on: Optional[datetime] = None

    class Config:
        from_attributes = True
