import itertools
import os
import tempfile
from datetime import timedelta
from decimal import Decimal

# Settings are read at import time: point the app at a throwaway database
# before anything from pharmastock is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="pharmastock-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP_DIR, 'default.db')}")
os.environ["EXPIRY_SCAN_ON_STARTUP"] = "false"
os.environ["EXPIRY_SCAN_DAILY"] = "false"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LEDGER_RETRY_BACKOFF_MS", "10")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from pharmastock.api.deps import get_session_factory  # noqa: E402
from pharmastock.core.rbac import Actor  # noqa: E402
from pharmastock.db.init_db import init_db  # noqa: E402
from pharmastock.db.session import make_engine, make_session_factory  # noqa: E402
from pharmastock.main import app  # noqa: E402
from pharmastock.models import Batch, Drug  # noqa: E402
from pharmastock.utils.jwt import create_access_token  # noqa: E402
from pharmastock.utils.timezone import today_local  # noqa: E402

SELLER = Actor(id=1, role="SELLER", username="seller")
MANAGER = Actor(id=2, role="MANAGER", username="manager")
PHARMACIST = Actor(id=3, role="PHARMACIST", username="pharmacist")


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'pharmastock.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_batch(session_factory):
    """Insert a drug with one batch and return the batch id."""
    seq = itertools.count(1)

    def _make(
        on_hand=10,
        reserved=0,
        unit_price="12.00",
        unit_cost="7.00",
        expiry=None,
        threshold=None,
        generic_name=None,
        trade_name=None,
    ):
        n = next(seq)
        session = session_factory()
        try:
            drug = Drug(
                sku=f"SKU-{n:04d}",
                generic_name=generic_name or f"Drug {n}",
                trade_name=trade_name,
            )
            session.add(drug)
            session.flush()
            batch = Batch(
                drug_id=drug.id,
                batch_number=f"B{n}",
                on_hand_qty=on_hand,
                reserved_qty=reserved,
                unit_price=Decimal(unit_price),
                unit_cost=Decimal(unit_cost),
                expiry_date=expiry or today_local() + timedelta(days=365),
                low_stock_threshold=threshold,
            )
            session.add(batch)
            session.commit()
            return batch.id
        finally:
            session.close()

    return _make


@pytest.fixture
def batch_qty(session_factory):
    """(on_hand, reserved) as currently stored."""

    def _get(batch_id):
        session = session_factory()
        try:
            b = session.get(Batch, batch_id)
            return b.on_hand_qty, b.reserved_qty
        finally:
            session.close()

    return _get


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():

    def _headers(role="SELLER", user_id=1, **extra):
        token = create_access_token(user_id=user_id, role=role, username=role.lower())
        headers = {"Authorization": f"Bearer {token}"}
        headers.update(extra)
        return headers

    return _headers
