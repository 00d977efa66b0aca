from sqlalchemy import Column, Integer, String, DateTime

from pharmastock.db.base import Base
from pharmastock.models.inventory import MYSQL_ARGS
from pharmastock.utils.timezone import now_local

LOW_STOCK_THRESHOLD_KEY = "low_stock_threshold"
EXPIRY_WARNING_DAYS_KEY = "expiry_warning_days"


class GeneralConfig(Base):
    """System-wide key/value settings (edited through the config service)."""
    __tablename__ = "general_configs"
    __table_args__ = (MYSQL_ARGS, )

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(String(500), nullable=False)
    value_type = Column(String(20), nullable=False, default="string")  # string / number / boolean
    description = Column(String(500), nullable=True)

    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)
