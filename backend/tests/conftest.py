"""Shared test fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from datetime import date
from decimal import Decimal
import uuid

from budgenudge.database import Base, get_db as database_get_db
from budgenudge.dependencies import get_db as dependencies_get_db, get_transport
from budgenudge.main import app
from budgenudge.models.notification import TemplateType
from budgenudge.models.recurring import RecurringMerchant, FrequencyClass, PredictionSource
from budgenudge.models.transaction import Transaction
from budgenudge.models.user import User, SmsPreference
from budgenudge.services.sms_service import LogTransport


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test using in-memory SQLite."""
    # Use StaticPool to ensure all connections use the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    Each session gets its own connection, so threads contend on the database
    the way separate trigger processes would.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'nudge.sqlite'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield factory

    engine.dispose()


@pytest.fixture
def transport():
    """In-memory SMS transport that records every message."""
    return LogTransport()


@pytest.fixture(scope="function")
def client(db_session, transport):
    """Create a test client with database and transport overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # Override both get_db functions
    app.dependency_overrides[database_get_db] = override_get_db
    app.dependency_overrides[dependencies_get_db] = override_get_db
    app.dependency_overrides[get_transport] = lambda: transport
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(session, phone_number="+15555550100", send_time="08:00", templates=()):
    user = User(id=str(uuid.uuid4()), phone_number=phone_number, send_time=send_time)
    session.add(user)
    session.flush()
    for template_type in templates:
        session.add(SmsPreference(id=str(uuid.uuid4()), user_id=user.id, template_type=template_type))
    session.commit()
    session.refresh(user)
    return user


def add_transaction(session, user_id, when, amount, description, category=None, merchant=None, pending=False):
    txn = Transaction(
        id=str(uuid.uuid4()),
        user_id=user_id,
        date=when,
        amount=Decimal(str(amount)),
        raw_description=description,
        enriched_merchant_name=merchant,
        enriched_category=category,
        pending=pending,
    )
    session.add(txn)
    session.commit()
    return txn


@pytest.fixture
def sample_user(db_session):
    """Create a user opted into the recurring summary."""
    return make_user(db_session, templates=[TemplateType.recurring_summary])


@pytest.fixture
def gym_history(db_session, sample_user):
    """Acme Gym billed 49.99 on the 5th of Jan, Feb and Mar 2025."""
    for month in (1, 2, 3):
        add_transaction(db_session, sample_user.id, date(2025, month, 5), "-49.99", "ACME GYM #4471")
    return sample_user


@pytest.fixture
def sample_merchant(db_session, sample_user):
    """Create a confirmed monthly recurring merchant."""
    merchant = RecurringMerchant(
        id=str(uuid.uuid4()),
        user_id=sample_user.id,
        merchant_key="netflix.com",
        display_name="NETFLIX.COM",
        source=PredictionSource.bill,
        frequency_class=FrequencyClass.monthly,
        average_amount=Decimal("15.49"),
        occurrence_count=3,
        last_occurrence_date=date(2025, 3, 12),
        next_predicted_date=date(2025, 4, 12),
        is_active=True,
    )
    db_session.add(merchant)
    db_session.commit()
    db_session.refresh(merchant)
    return merchant


@pytest.fixture
def create_user():
    """``create_user(session, phone_number=..., send_time=..., templates=[...])``"""
    return make_user


@pytest.fixture
def add_txn():
    """``add_txn(session, user_id, when, amount, description, ...)``"""
    return add_transaction
