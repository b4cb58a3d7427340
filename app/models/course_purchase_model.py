from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from app.utils.database import Base


class CoursePurchase(Base):
    """
    A user's purchased-course record.

    `installments` is the pre-ledger embedded array
      [{"installmentNumber": 1, "amount": 1000, "isPaid": true, "paidDate": "..."}]
    kept readable for enrollments that never got a UserLedger. New installment
    activity is written to the ledger only.
    """
    __tablename__ = "course_purchases"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_purchase_user_course"),
    )

    purchase_id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.course_id", ondelete="RESTRICT"), nullable=False, index=True)

    purchase_date = Column(DateTime, server_default=func.now(), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False, server_default="0")

    # full / installment
    payment_type = Column(String(20), nullable=False, server_default="full")
    total_installments = Column(Integer, nullable=False, server_default="-1")

    installments = Column(JSON, nullable=True)  # legacy, read-only

    access_granted = Column(Boolean, nullable=False, default=False)
    granted_on = Column(DateTime, nullable=True)
