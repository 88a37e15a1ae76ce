"""
Pytest fixtures for station backend tests.

Provides the application on in-memory SQLite, a per-test table wipe, and
station/daily record/nozzle/user fixtures shared by the service and route tests.
"""

from datetime import date
from decimal import Decimal

import pytest

from stationops import create_app
from stationops.extensions import db
from stationops.models import DailyRecord, FuelProduct, Nozzle, Station, User
from stationops.models.stations import STATION_TYPE_FULL, STATION_TYPE_SIMPLE
from stationops.models.users import ROLE_ADMIN, ROLE_STAFF


BUSINESS_DATE = date(2026, 1, 5)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def product(db_session):
    diesel = FuelProduct(code="DIESEL", name="Diesel B7")
    db_session.add(diesel)
    db_session.commit()
    return diesel


@pytest.fixture(scope='function')
def station(db_session):
    """Full-service station running the shift workflow."""
    station = Station(name="Highway 4 North", station_type=STATION_TYPE_FULL, uses_shifts=True)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def simple_station(db_session):
    """Station without shifts; covered by the daily anomaly detector."""
    station = Station(name="Village Pump", station_type=STATION_TYPE_SIMPLE, uses_shifts=False)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def nozzle(db_session, station, product):
    nozzle = Nozzle(station_id=station.id, nozzle_number=1, product_id=product.id)
    db_session.add(nozzle)
    db_session.commit()
    return nozzle


@pytest.fixture(scope='function')
def daily_record(db_session, station):
    record = DailyRecord(station_id=station.id, date=BUSINESS_DATE, retail_price=Decimal("30.84"))
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def simple_daily_record(db_session, simple_station):
    record = DailyRecord(station_id=simple_station.id, date=BUSINESS_DATE, retail_price=Decimal("30.84"))
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def staff(db_session, station):
    user = User(name="Somchai", role=ROLE_STAFF, station_id=station.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    user = User(name="Head Office", role=ROLE_ADMIN)
    db_session.add(user)
    db_session.commit()
    return user
