"""Demo accounts and trips for local development. Idempotent."""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import hash_password
from app.db.session import SessionLocal
from app.models.trip import Trip
from app.repositories.profiles import ProfileRepository
from app.repositories.users import UserRepository

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "carpool123"

DEMO_USERS = [
    ("driver@carpool.local", {"full_name": "Dana Driver", "phone": "+1 555 010 2000", "bio": "Daily commuter"}),
    ("rider@carpool.local", {"full_name": "Riley Rider", "phone": "+1 555 010 3000", "bio": ""}),
]

# (origin, destination, [lng, lat] origin, [lng, lat] destination, seats, price)
DEMO_TRIPS = [
    ("San Francisco, CA", "San Jose, CA", [-122.4194, 37.7749], [-121.8863, 37.3382], 3, "12.50"),
    ("Oakland, CA", "Sacramento, CA", [-122.2711, 37.8044], [-121.4944, 38.5816], 2, "18.00"),
    ("Berkeley, CA", "Palo Alto, CA", [-122.2727, 37.8716], [-122.1430, 37.4419], 4, None),
]


def ensure_user(db: Session, email: str, password: str, metadata: dict) -> str:
    users = UserRepository(db)
    user = users.get_by_email(email)
    if not user:
        user = users.add(email, hash_password(password), metadata)
        logger.info("seeded user %s", email)
    ProfileRepository(db).ensure(user.id, metadata)
    db.commit()
    return user.id


def ensure_trips(db: Session, driver_id: str) -> int:
    if db.execute(select(Trip.id).where(Trip.driver_id == driver_id).limit(1)).first():
        return 0
    now = datetime.now(timezone.utc)
    for i, (origin, destination, o_pt, d_pt, seats, price) in enumerate(DEMO_TRIPS, start=1):
        db.add(Trip(
            id=str(uuid.uuid4()),
            driver_id=driver_id,
            origin_text=origin,
            destination_text=destination,
            origin_point=o_pt,
            destination_point=d_pt,
            route_geojson={
                "type": "Feature",
                "properties": {"distance": 0, "duration": 0},
                "geometry": {"type": "LineString", "coordinates": [o_pt, d_pt]},
            },
            departure_timestamp=now + timedelta(days=i, hours=8),
            available_seats=seats,
            price=Decimal(price) if price else None,
            description="Demo trip",
        ))
    db.commit()
    return len(DEMO_TRIPS)


def run(db=None):
    own = db is None
    if own:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("users table not found yet, skipping seed (run alembic upgrade head)")
            return

        if settings.is_production:
            logger.info("production environment, skipping demo seed")
            return

        ids = [ensure_user(db, email, DEMO_PASSWORD, meta) for email, meta in DEMO_USERS]
        created = ensure_trips(db, ids[0])
        logger.info("seed complete: %d demo trip(s) created", created)
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    run()
