"""
Seed script for a local demo user with a few months of transactions.
"""

from datetime import date, timedelta
from decimal import Decimal
import logging
import os
import uuid

from budgenudge.config import settings
from budgenudge.database import Base, SessionLocal, engine
from budgenudge.logging_config import setup_logging
from budgenudge.models import SmsPreference, TemplateType, Transaction, User

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@budgenudge.local"


def _ensure_sqlite_dir() -> None:
    prefix = "sqlite:///"
    if settings.database_url.startswith(prefix):
        directory = os.path.dirname(settings.database_url[len(prefix):])
        if directory:
            os.makedirs(directory, exist_ok=True)


def _demo_transactions(user_id: str, today: date):
    """Monthly gym and streaming bills, a biweekly paycheck and daily groceries."""
    start = (today.replace(day=1) - timedelta(days=92)).replace(day=1)
    rows = []

    month = start
    while month <= today:
        for day, description, amount in (
            (5, "ACME GYM #4471", "-49.99"),
            (12, "NETFLIX.COM 866-579-7172", "-15.49"),
            (1, "CITY POWER AUTOPAY 00931", "-88.20"),
        ):
            when = month.replace(day=day)
            if when <= today:
                rows.append((when, description, Decimal(amount), None))
        month = (month.replace(day=28) + timedelta(days=4)).replace(day=1)

    when = start
    while when <= today:
        rows.append((when, "WHOLE FOODS MKT 10233", Decimal("-42.17") - Decimal(when.day % 5), "Groceries"))
        when += timedelta(days=3)

    return [
        Transaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            date=when,
            amount=amount,
            raw_description=description,
            enriched_category=category,
        )
        for when, description, amount, category in rows
    ]


def seed_demo_user():
    """Create the schema and a demo user if none exists yet."""
    _ensure_sqlite_dir()
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()

    try:
        # Check if the demo user already exists
        existing = db.query(User).filter(User.email == DEMO_EMAIL).first()
        if existing:
            logger.info("Demo user already seeded (%s)", existing.id)
            return existing.id

        user = User(
            id=str(uuid.uuid4()),
            email=DEMO_EMAIL,
            phone_number="+15555550123",
            send_time=settings.default_send_time,
        )
        db.add(user)
        db.flush()

        for template_type in TemplateType:
            db.add(SmsPreference(id=str(uuid.uuid4()), user_id=user.id, template_type=template_type))

        transactions = _demo_transactions(user.id, date.today())
        db.add_all(transactions)

        db.commit()
        logger.info("Seeded demo user %s with %d transactions", user.id, len(transactions))
        return user.id

    except Exception:
        db.rollback()
        logger.exception("Error seeding demo user")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    seed_demo_user()
