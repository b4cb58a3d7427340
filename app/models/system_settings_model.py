from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from app.utils.database import Base


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(String(200), nullable=False)
    description = Column(Text)

    updated_by = Column(String(100), nullable=True)
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())


def get_setting(db: Session, key: str, default: str) -> str:
    row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    return row.value if row else default
