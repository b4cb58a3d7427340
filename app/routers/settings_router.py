import logging
from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.utils.database import get_db
from app.models.system_settings_model import SystemSetting
from app.schemas.settings_schema import SettingPatch, SettingCreate, SettingOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])

# settings the installment core reads; value must parse as a positive amount
NUMERIC_KEYS = {"MIN_INSTALLMENT_AMOUNT"}


def _validate_value(key: str, value: str) -> str:
    value = str(value).strip()
    if key in NUMERIC_KEYS:
        try:
            parsed = Decimal(value)
        except InvalidOperation:
            raise HTTPException(status_code=400, detail=f"{key} must be a number")
        if parsed <= 0:
            raise HTTPException(status_code=400, detail=f"{key} must be > 0")
    return value


@router.get("", response_model=list[SettingOut])
def list_settings(db: Session = Depends(get_db)):
    return db.query(SystemSetting).order_by(SystemSetting.key.asc()).all()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SettingOut)
def create_setting(payload: SettingCreate, db: Session = Depends(get_db)):
    # 1) Prevent duplicate key
    existing = db.query(SystemSetting).filter(SystemSetting.key == payload.key).first()
    if existing:
        raise HTTPException(status_code=409, detail="Setting key already exists")

    # 2) Create new setting
    obj = SystemSetting(
        key=payload.key,
        value=_validate_value(payload.key, payload.value),
        description=(payload.description or "").strip(),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)

    logger.info("Setting %s created = %s", obj.key, obj.value)
    return obj


@router.patch("", response_model=SettingOut)
def update_setting(payload: SettingPatch, db: Session = Depends(get_db)):
    key = payload.key.strip().upper()
    obj = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if not obj:
        raise HTTPException(404, "Setting not found")

    old = obj.value
    obj.value = _validate_value(key, payload.value)
    obj.updated_by = payload.updated_by
    db.commit()
    db.refresh(obj)

    logger.info("Setting %s changed %s -> %s by %s", key, old, obj.value, payload.updated_by or "-")
    return obj
