from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    JSON,
    ForeignKey,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.utils.database import Base


class UserLedger(Base):
    """One installment enrollment per (user, course)."""
    __tablename__ = "user_ledgers"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_ledger_user_course"),
        Index("ix_ledgers_status", "status"),
    )

    ledger_id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.course_id", ondelete="RESTRICT"), nullable=False, index=True)

    # traceability only; obligations come from plan_snapshot
    installment_plan_id = Column(
        Integer,
        ForeignKey("installment_plans.plan_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # frozen at enrollment, never written again:
    # {"planType", "totalAmount", "numberOfInstallments",
    #  "installments": [{"amount", "dueDateOffset", "dueDate"}]}
    plan_snapshot = Column(JSON, nullable=False)

    remaining_amount = Column(Numeric(12, 2), nullable=False)

    # pending / completed / defaulted
    status = Column(String(20), nullable=False, server_default="pending")

    next_due_date = Column(DateTime, nullable=True)  # advisory cache

    created_on = Column(DateTime, server_default=func.now(), nullable=False)
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())

    payments = relationship(
        "LedgerPayment",
        back_populates="ledger",
        cascade="all, delete-orphan",
        order_by="LedgerPayment.payment_id",
        lazy="selectin",
        passive_deletes=True,
    )


class LedgerPayment(Base):
    """Append-only: each row is a completed-payment fact."""
    __tablename__ = "ledger_payments"
    __table_args__ = (
        # at most one paid entry per installment; the conditional insert in
        # the ledger service relies on this to close concurrent replays
        Index(
            "uq_ledger_paid_installment",
            "ledger_id",
            "installment_index",
            unique=True,
            postgresql_where=text("status = 'paid'"),
            sqlite_where=text("status = 'paid'"),
        ),
    )

    payment_id = Column(Integer, primary_key=True, index=True)
    ledger_id = Column(Integer, ForeignKey("user_ledgers.ledger_id", ondelete="CASCADE"), nullable=False, index=True)

    installment_index = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_at = Column(DateTime, nullable=False)
    order_id = Column(String(100), nullable=True, index=True)

    # paid / failed
    status = Column(String(20), nullable=False, server_default="paid")

    ledger = relationship("UserLedger", back_populates="payments")
