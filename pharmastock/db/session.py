# pharmastock/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from pharmastock.core.config import settings


def make_engine(db_uri: str) -> Engine:
    if db_uri.startswith("sqlite"):
        # writers wait on the file lock for `timeout` seconds before SQLITE_BUSY
        return create_engine(
            db_uri,
            connect_args={"check_same_thread": False, "timeout": 15},
            future=True,
        )
    return create_engine(
        db_uri,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
        future=True,
    )


def make_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=eng,
        future=True,
    )


engine: Engine = make_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = make_session_factory(engine)
