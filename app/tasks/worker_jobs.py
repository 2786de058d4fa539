import logging

from sqlalchemy.orm import Session

from app.core.errors import StoreError
from app.db.session import SessionLocal
from app.repositories.base import commit
from app.repositories.trips import TripRepository
from app.services.email_service import process_pending_emails
from app.services.trip_service import parse_route_geojson, route_endpoints

logger = logging.getLogger(__name__)

_MISSING_TABLE_MARKERS = ("does not exist", "no such table")  # PostgreSQL, SQLite


def _missing_tables(e: StoreError) -> bool:
    return any(m in (e.detail or "") for m in _MISSING_TABLE_MARKERS)


def populate_trip_points(limit: int = 200, db: Session | None = None) -> dict:
    """Fill origin_point/destination_point from stored route geometry where missing.

    Works in batches of `limit`. Filled rows drop out of the query once committed,
    so the offset only advances past rows whose geometry can't be used.
    """
    own = db is None
    db = db or SessionLocal()
    try:
        repo = TripRepository(db)
        updated, skipped = 0, 0
        while True:
            try:
                trips = repo.missing_points(limit, offset=skipped)
            except StoreError as e:
                if _missing_tables(e):
                    # DB not migrated yet; don't crash the worker.
                    return {"skipped": True, "reason": "missing_tables"}
                raise
            filled = 0
            for trip in trips:
                origin, destination = route_endpoints(parse_route_geojson(trip.route_geojson))
                if origin is None:
                    skipped += 1
                    continue
                trip.origin_point = origin
                trip.destination_point = destination
                filled += 1
            if filled:
                commit(db, "trips.populate_points")
                updated += filled
            if not trips or len(trips) < limit:
                break
        logger.info("trip points backfill: updated=%d skipped=%d", updated, skipped)
        return {"updated": updated, "skipped": skipped}
    finally:
        if own:
            db.close()


def process_email_queue(limit: int = 50, db: Session | None = None) -> dict:
    own = db is None
    db = db or SessionLocal()
    try:
        try:
            result = process_pending_emails(db, limit=limit)
        except StoreError as e:
            if _missing_tables(e):
                return {"skipped": True, "reason": "missing_tables"}
            raise
        if result["processed"]:
            logger.info("email queue: %s", result)
        return result
    finally:
        if own:
            db.close()
