# pharmastock/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All pharmacy stock / sales tables inherit from this."""
    pass
