from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from sqlalchemy.sql import func
from app.utils.database import Base


class ReconcileAlert(Base):
    """Captured payment whose ledger bookkeeping failed; needs manual remediation."""
    __tablename__ = "reconcile_alerts"

    alert_id = Column(Integer, primary_key=True, index=True)

    code = Column(String(40), nullable=False, server_default="RECONCILE_FAILED")
    order_id = Column(String(100), nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    course_id = Column(Integer, nullable=True)
    installment_index = Column(Integer, nullable=True)

    detail = Column(Text, nullable=True)

    resolved = Column(Boolean, nullable=False, default=False)
    resolved_on = Column(DateTime, nullable=True)

    created_on = Column(DateTime, server_default=func.now())
