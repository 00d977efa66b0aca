# pharmastock/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmastock.core.config import settings
from pharmastock.db.base import Base
from pharmastock.db.session import engine as default_engine, make_session_factory

# Import all models so metadata is complete
from pharmastock import models  # noqa: F401
from pharmastock.models.general_config import (
    GeneralConfig,
    LOW_STOCK_THRESHOLD_KEY,
    EXPIRY_WARNING_DAYS_KEY,
)

logger = logging.getLogger(__name__)


def seed_general_configs(db: Session) -> None:
    """
    Seed ONLY missing config keys; safe to run multiple times.
    """
    defaults = [
        (LOW_STOCK_THRESHOLD_KEY, str(settings.DEFAULT_LOW_STOCK_THRESHOLD),
         "Default threshold for low stock notifications"),
        (EXPIRY_WARNING_DAYS_KEY, str(settings.DEFAULT_EXPIRY_WARNING_DAYS),
         "Days before expiry to raise a near-expiry notification"),
    ]
    existing = {k for (k, ) in db.query(GeneralConfig.key).all()}
    for key, value, description in defaults:
        if key in existing:
            continue
        db.add(GeneralConfig(key=key, value=value, value_type="number", description=description))
    db.commit()


def init_db(eng: Engine = default_engine, *, seed: bool = True) -> None:
    Base.metadata.create_all(bind=eng)
    if not seed:
        return
    db = make_session_factory(eng)()
    try:
        seed_general_configs(db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Seeding general configs failed")
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create pharmacy stock/sales tables")
    parser.add_argument("--no-seed", action="store_true", help="skip default general configs")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    init_db(seed=not args.no_seed)
    logger.info("Tables ready on %s", default_engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    main()
