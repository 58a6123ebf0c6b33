"""
Visitation engine - Test Configuration and Fixtures
"""
import os
import datetime

# Set testing environment before the app reads its config
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['FACILITY_TIMEZONE'] = 'UTC'

import pytest
from faker import Faker
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from visitation.clock import FixedClock, get_clock
from visitation.database import get_db, make_engine
from visitation.main import app
from visitation.models import Base, VisitLog, VisitStatus
from visitation.registry import register_person
from visitation.time_arithmetic import format_clock_time

fake = Faker()

# Monday 2025-03-10 09:05 UTC; facility time is UTC in tests
T0 = datetime.datetime(2025, 3, 10, 9, 5, tzinfo=datetime.timezone.utc)


def at(hour: int, minute: int = 0, day: int = 10) -> datetime.datetime:
    """An instant on March `day` 2025 (UTC)."""
    return datetime.datetime(2025, 3, day, hour, minute, tzinfo=datetime.timezone.utc)


@pytest.fixture(scope='function')
def engine():
    """Fresh in-memory schema for each test"""
    engine = make_engine('sqlite://')
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestSessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def client(db_session, clock):
    """Test client with database and clock overrides"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_person(db_session):
    """Factory registering a visitor (default) or guest"""
    def _make(person_type: str = 'visitor', **kwargs):
        if person_type == 'visitor':
            kwargs.setdefault('inmate_id', f"INM-{fake.random_number(digits=5, fix_len=True)}")
        else:
            kwargs.setdefault('visit_purpose', 'Legal consultation')
        return register_person(db_session, person_type, fake.name(), now=T0, **kwargs)
    return _make


@pytest.fixture
def make_log(db_session):
    """Factory inserting a visit log directly, bypassing the timer lifecycle"""
    def _make(person, start: datetime.datetime, hours: int = 3, status: str = VisitStatus.IN_PROGRESS.value):
        log = VisitLog(
            person_id=person.person_id,
            person_type=person.person_type,
            person_name=person.full_name,
            visit_date=start.date(),
            time_in=format_clock_time(start),
            timer_start=start,
            timer_end=start + datetime.timedelta(hours=hours),
            status=status,
            is_timer_active=status == VisitStatus.IN_PROGRESS.value,
            created_at=start,
            updated_at=start,
        )
        db_session.add(log)
        db_session.commit()
        db_session.refresh(log)
        return log
    return _make
