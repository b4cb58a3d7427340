from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Literal


# -------------------------------------------------
# Schedule / charges
# -------------------------------------------------
class ScheduleRequest(BaseModel):
    price: float
    discount_percent: float = 0
    tax_percent: float = 0
    handling_fee_percent: float = 0
    number_of_installments: int = 1
    plan_duration_months: Optional[int] = None


class ScheduleEntryOut(BaseModel):
    index: int
    amount: float
    due_date_offset: int
    due_date_label: str


class ScheduleOut(BaseModel):
    total_amount: float
    number_of_installments: int
    installments: List[ScheduleEntryOut]


class ChargesRequest(BaseModel):
    base_price: float
    discount_percent: float = 0
    tax_percent: float = 0
    handling_fee_percent: float = 0
    number_of_installments: int = 1


class ChargesOut(BaseModel):
    base_price: float
    discount_percent: float
    discount_value: float
    tax_percent: float
    tax_amount: float
    handling_fee_percent: float
    handling_charge: float
    total_amount: float
    number_of_installments: int
    installment_amounts: List[float] = []


# -------------------------------------------------
# Plans
# -------------------------------------------------
class PlanConfigure(BaseModel):
    course_id: int
    plan_type: str = Field(..., min_length=1)
    number_of_installments: int
    discount_percent: Optional[float] = None

    @field_validator("plan_type", mode="before")
    def strip_plan_type(cls, v):
        return str(v).strip() if v is not None else v


class ScheduleEntryIn(BaseModel):
    amount: float = Field(gt=0)
    due_date_offset: Optional[int] = None
    due_date_label: Optional[str] = None


class PlanUpsert(BaseModel):
    course_id: int
    plan_type: str = Field(..., min_length=1)
    installments: List[ScheduleEntryIn] = Field(..., min_length=1)
    total_amount: float = Field(gt=0)
    discount: float = Field(0, ge=0)


class PlanInstallmentOut(BaseModel):
    installment_index: int
    amount: float
    due_date_offset: int
    due_date_label: str
    is_paid: bool

    class Config:
        from_attributes = True


class PlanOut(BaseModel):
    plan_id: int
    course_id: int
    plan_type: str
    number_of_installments: int
    total_amount: float
    remaining_amount: float
    discount: float
    status: str
    installments: List[PlanInstallmentOut]

    class Config:
        from_attributes = True


class PlanStatsOut(BaseModel):
    course_id: int
    total_plans: int
    plan_types: List[str]
    enrolled_users: int
    completed_enrollments: int
    active_enrollments: int
    defaulted_enrollments: int
    total_revenue: float
    pending_revenue: float


# -------------------------------------------------
# Ledger
# -------------------------------------------------
class EnrollRequest(BaseModel):
    user_id: int
    course_id: int
    plan_type: str = Field(..., min_length=1)


class LedgerPaymentOut(BaseModel):
    installment_index: int
    amount: float
    paid_at: datetime
    order_id: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


class LedgerOut(BaseModel):
    ledger_id: int
    user_id: int
    course_id: int
    installment_plan_id: Optional[int] = None
    plan_snapshot: dict
    remaining_amount: float
    status: str
    next_due_date: Optional[datetime] = None
    created_on: Optional[datetime] = None
    payments: List[LedgerPaymentOut] = []

    class Config:
        from_attributes = True


class BalanceInstallmentOut(BaseModel):
    installment_index: int
    installment_number: int
    amount: float
    is_paid: bool
    paid_on: Optional[datetime] = None
    order_id: Optional[str] = None


class BalanceOut(BaseModel):
    source: Literal["ledger", "legacy"]
    plan_type: Optional[str] = None
    installments: List[BalanceInstallmentOut]
    total_amount: float
    paid_amount: float
    remaining_amount: float


class TimelineEntryOut(BaseModel):
    installment_index: int
    installment_number: int
    amount: float
    due_date: datetime
    is_paid: bool
    paid_on: Optional[datetime] = None
    status: Literal["PAID", "OVERDUE", "UPCOMING"]
    days_past_due: int = 0


class TimelineOut(BaseModel):
    source: Literal["ledger", "legacy"]
    plan_type: Optional[str] = None
    anchor_date: datetime
    timeline: List[TimelineEntryOut]
    total_amount: float
    paid_amount: float
    remaining_amount: float


# -------------------------------------------------
# Access
# -------------------------------------------------
class OverdueInstallmentOut(BaseModel):
    installment_index: int
    installment_number: int
    amount: float
    due_date: datetime
    days_past_due: int


class NextDueInstallmentOut(BaseModel):
    installment_index: int
    installment_number: int
    amount: float
    due_date: datetime


class AccessOut(BaseModel):
    has_access: bool
    reason: Literal["FULL_PAYMENT", "FIRST_INSTALLMENT_UNPAID", "INSTALLMENTS_OVERDUE", "PAYMENTS_CURRENT"]
    message: Optional[str] = None
    plan_type: Optional[str] = None
    overdue_installments: Optional[List[OverdueInstallmentOut]] = None
    total_overdue_amount: Optional[float] = None
    next_due_installment: Optional[NextDueInstallmentOut] = None


class SweepOut(BaseModel):
    total_checked: int
    access_revoked: int
    access_restored: int
    timestamp: datetime
