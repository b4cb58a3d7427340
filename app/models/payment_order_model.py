from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    Boolean,
    ForeignKey,
    Index,
)
from sqlalchemy.sql import func
from app.utils.database import Base


class PaymentOrder(Base):
    __tablename__ = "payment_orders"

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
        Index("ix_orders_course_status", "course_id", "status"),
        Index("ix_orders_user_course", "user_id", "course_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(String(100), unique=True, nullable=False)  # gateway order id
    payment_id = Column(String(100), nullable=True, index=True)  # gateway payment id

    amount = Column(Numeric(12, 2), nullable=False)  # currency units, not paise
    currency = Column(String(10), nullable=False, server_default="INR")
    receipt = Column(String(100), nullable=True)
    tracking_number = Column(String(50), nullable=True)

    # created / partial / paid / failed ; paid and failed are terminal
    status = Column(String(20), nullable=False, server_default="created")

    user_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.course_id", ondelete="RESTRICT"), nullable=False, index=True)

    # full / installment
    payment_mode = Column(String(20), nullable=False)
    plan_type = Column(String(50), nullable=True)
    installment_plan_id = Column(
        Integer,
        ForeignKey("installment_plans.plan_id", ondelete="SET NULL"),
        nullable=True,
    )

    # installment details (null for full payments)
    installment_index = Column(Integer, nullable=True)
    total_installments = Column(Integer, nullable=True)
    installment_amount = Column(Numeric(12, 2), nullable=True)
    installment_is_paid = Column(Boolean, nullable=True)

    paid_at = Column(DateTime, nullable=True)
    created_on = Column(DateTime, server_default=func.now())
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def installment_details(self):
        if self.installment_index is None:
            return None
        return {
            "installment_index": self.installment_index,
            "total_installments": self.total_installments,
            "installment_amount": self.installment_amount,
            "is_paid": bool(self.installment_is_paid),
        }
