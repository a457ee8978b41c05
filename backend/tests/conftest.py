"""
Test fixtures for Circuit Office backend tests.
"""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from circuit_office.database import Base, get_db
from circuit_office.main import app
from circuit_office.models import Trip, TripDay, Formula, Item
from circuit_office.services.currency import CurrencyService


# Create test database engine (SQLite in-memory)
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Enable foreign key constraints for SQLite
@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """
    Override the get_db dependency to use the test database session.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    return _override_get_db


@pytest.fixture(scope="function")
async def client(override_get_db):
    """
    Create an async test client with the database dependency overridden.
    """
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_cache():
    CurrencyService._cache = None
    yield
    CurrencyService._cache = None


@pytest.fixture
def sample_trip(db_session):
    """
    A 3-day trip priced in EUR:

    day 1: "Arrival" block with a per-room hotel and a per-group transfer
    day 2: "Temple visit" block with a per-person ticket and a guide
    day 3: empty
    plus one transversal insurance service (per person).
    """
    trip = Trip(name="Northern Thailand", default_currency="EUR", margin_pct=20.0, margin_type="margin")
    db_session.add(trip)
    db_session.flush()

    days = [
        TripDay(trip_id=trip.id, day_number=n, sort_order=n - 1, title=title)
        for n, title in ((1, "Chiang Mai"), (2, "Doi Suthep"), (3, "Chiang Rai"))
    ]
    db_session.add_all(days)
    db_session.flush()

    arrival = Formula(trip_id=trip.id, trip_day_id=days[0].id, name="Arrival", block_type="accommodation", sort_order=0)
    arrival.items = [
        Item(name="Hotel", cost_nature_code="HTL", unit_cost=50.0, quantity=1, ratio_rule="per_room", sort_order=0),
        Item(name="Transfer", cost_nature_code="TRS", unit_cost=40.0, quantity=1, ratio_rule="per_group", sort_order=1),
    ]
    visit = Formula(trip_id=trip.id, trip_day_id=days[1].id, name="Temple visit", block_type="activity", sort_order=0)
    visit.items = [
        Item(name="Ticket", cost_nature_code="ACT", unit_cost=10.0, quantity=1, ratio_rule="per_person", sort_order=0),
        Item(name="Guide", cost_nature_code="GDE", unit_cost=30.0, quantity=1, ratio_rule="per_group", sort_order=1),
    ]
    insurance = Formula(trip_id=trip.id, trip_day_id=None, name="Insurance", block_type="service", sort_order=0)
    insurance.items = [
        Item(name="Insurance", cost_nature_code="MIS", unit_cost=5.0, quantity=1, ratio_rule="per_person"),
    ]
    db_session.add_all([arrival, visit, insurance])
    db_session.commit()
    db_session.refresh(trip)
    return trip
