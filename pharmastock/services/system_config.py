# FILE: pharmastock/services/system_config.py
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from pharmastock.core.config import settings
from pharmastock.models.general_config import (
    GeneralConfig,
    LOW_STOCK_THRESHOLD_KEY,
    EXPIRY_WARNING_DAYS_KEY,
)

logger = logging.getLogger(__name__)


def get_int_config(db: Session, key: str, default: int) -> int:
    row = db.query(GeneralConfig).filter(GeneralConfig.key == key).first()
    if not row or row.value in (None, ""):
        return default
    try:
        return int(str(row.value).strip())
    except ValueError:
        logger.warning("general_configs[%s]=%r is not an integer, using %s", key, row.value, default)
        return default


def default_low_stock_threshold(db: Session) -> int:
    return get_int_config(db, LOW_STOCK_THRESHOLD_KEY, settings.DEFAULT_LOW_STOCK_THRESHOLD)


def expiry_warning_days(db: Session) -> int:
    return get_int_config(db, EXPIRY_WARNING_DAYS_KEY, settings.DEFAULT_EXPIRY_WARNING_DAYS)
