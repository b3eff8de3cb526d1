import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_config
from app.core.enums import UserType
from app.database.db import get_db_session
from app.models import BulkAnalysisDomain, PublisherOffering, User, Website

config = get_config()

DEMO_SITES = [
    # domain, DR, traffic, listed cost, offering price
    ("techradar-demo.com", 72, 180000, 25000, 22000),
    ("greenliving-demo.org", 48, 32000, 12000, 9500),
]


def seed_system_user(db) -> None:
    existing = db.query(User).filter(User.email == config.SYSTEM_USER_EMAIL).first()
    if existing:
        print("System user already exists.")
        return
    db.add(User(email=config.SYSTEM_USER_EMAIL, full_name="System", user_type=UserType.INTERNAL.value))
    print(f"Seeded system user: {config.SYSTEM_USER_EMAIL}")


def seed_catalog(db) -> None:
    for domain, rating, traffic, cost, price in DEMO_SITES:
        if db.query(Website).filter(Website.domain == domain).first():
            print(f"Website already exists: {domain}")
            continue
        website = Website(domain=domain, domain_rating=rating, total_traffic=traffic, guest_post_cost=cost)
        db.add(website)
        db.flush()
        db.add(PublisherOffering(website_id=website.id, publisher_id=1, base_price=price))
        db.add(BulkAnalysisDomain(domain=domain, qualification_status="high_quality", qualification_data={}))
        print(f"Seeded website and offering: {domain}")


def seed() -> None:
    with get_db_session() as db:
        try:
            seed_system_user(db)
            seed_catalog(db)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            print(f"Error seeding data: {exc}")
            raise


if __name__ == "__main__":
    seed()
