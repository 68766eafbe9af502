from datetime import date, datetime, timezone

import pytest

from database import Database
from models import Medicine, PharmacySystem


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "pharmacy.db")


@pytest.fixture
def db(db_path):
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2024-01-01 10:30 UTC."""
    moment = datetime(2024, 1, 1, 10, 30, tzinfo=timezone.utc)
    return lambda: moment


@pytest.fixture
def system(db, fixed_clock):
    return PharmacySystem(db, clock=fixed_clock)


@pytest.fixture
def make_medicine():
    def _make(quantity=10, price=5.0, expiry=date(2025, 1, 1), id="m1", name="Aspirin"):
        return Medicine(id, name, price, quantity, expiry)
    return _make
