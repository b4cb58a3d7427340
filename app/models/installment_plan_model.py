from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    Boolean,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.utils.database import Base


class InstallmentPlan(Base):
    """Admin-defined template: one per (course, plan_type)."""
    __tablename__ = "installment_plans"
    __table_args__ = (
        UniqueConstraint("course_id", "plan_type", name="uq_plan_course_plan_type"),
    )

    plan_id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.course_id", ondelete="RESTRICT"), nullable=False, index=True)

    plan_type = Column(String(50), nullable=False)  # "3 months" / "6 months" / "custom"
    number_of_installments = Column(Integer, nullable=False)

    total_amount = Column(Numeric(12, 2), nullable=False)
    # template-level, advisory only; a user's balance lives on their ledger
    remaining_amount = Column(Numeric(12, 2), nullable=False, server_default="0")
    discount = Column(Numeric(5, 2), nullable=False, server_default="0")

    # pending / completed
    status = Column(String(20), nullable=False, server_default="pending")

    created_on = Column(DateTime, server_default=func.now())
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())

    installments = relationship(
        "PlanInstallment",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanInstallment.installment_index",
        lazy="selectin",
        passive_deletes=True,
    )


class PlanInstallment(Base):
    __tablename__ = "plan_installments"
    __table_args__ = (
        UniqueConstraint("plan_id", "installment_index", name="uq_plan_installment_index"),
    )

    plan_installment_id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("installment_plans.plan_id", ondelete="CASCADE"), nullable=False, index=True)

    installment_index = Column(Integer, nullable=False)  # 0-based
    amount = Column(Numeric(12, 2), nullable=False)
    due_date_offset = Column(Integer, nullable=False)  # months after enrollment
    due_date_label = Column(String(30), nullable=False)  # "DOP", "DOP + 1 month"

    # legacy template flag; never ground truth for a user's payment
    is_paid = Column(Boolean, nullable=False, default=False)

    plan = relationship("InstallmentPlan", back_populates="installments")
