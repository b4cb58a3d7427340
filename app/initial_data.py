import logging

from app.core import config
from app.models.system_settings_model import SystemSetting
from app.utils.database import SessionLocal

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = [
    (
        "MIN_INSTALLMENT_AMOUNT",
        str(config.MIN_INSTALLMENT_AMOUNT),
        "Smallest allowed single installment, in currency units",
    ),
]


def seed_settings(db):
    created = 0
    for key, value, description in DEFAULT_SETTINGS:
        exists = db.query(SystemSetting).filter(SystemSetting.key == key).first()
        if exists:
            continue
        db.add(SystemSetting(key=key, value=value, description=description, updated_by="system"))
        created += 1

    if created:
        db.commit()
    return created


def init_seed():
    db = SessionLocal()
    try:
        created = seed_settings(db)
        logger.info("Seeded %s default setting(s)", created)
    finally:
        db.close()
