import json
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.core.errors import CarpoolError, NotFound, UpstreamServiceError, ValidationError
from app.models.profile import Profile
from app.models.trip import Trip
from app.repositories.base import commit
from app.repositories.bookings import BookingRepository
from app.repositories.profiles import ProfileRepository
from app.repositories.trips import TripFilters, TripRepository
from app.services.geo_client import GeoClient
from app.services.validators import is_valid_uuid, parse_price, parse_timestamp, validate_trip

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50
FEATURED_LIMIT = 10
USER_STATS_DAYS = 30

UNKNOWN_DRIVER = {"full_name": "Unknown Driver", "phone": None, "avatar_url": None, "bio": None}


def as_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _iso(dt: datetime | None) -> str | None:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


def _to_int(value, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_pagination(page=None, limit=None) -> tuple[int, int, int]:
    """Return (page, limit, offset) with page >= 1 and 1 <= limit <= 50."""
    page = max(1, _to_int(page, 1) or 1)
    limit = min(MAX_PAGE_SIZE, max(1, _to_int(limit, DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE))
    return page, limit, (page - 1) * limit


# --- route geometry -------------------------------------------------------

def parse_route_geojson(value) -> dict | None:
    if not value or value == "{}":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("invalid route_geojson string, ignoring it")
            return None
    return value if isinstance(value, dict) else None


def route_coordinates(route: dict | None) -> list | None:
    """LineString coordinates from a Feature or a bare geometry, if it has at least 2 pairs."""
    if not route:
        return None
    geometry = route.get("geometry") if route.get("type") == "Feature" or "geometry" in route else route
    coords = (geometry or {}).get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coords, list) or len(coords) < 2:
        return None
    try:
        return [[float(c[0]), float(c[1])] for c in coords]
    except (TypeError, ValueError, IndexError):
        return None


def as_feature(route: dict | None) -> dict | None:
    """Wrap a bare geometry in a Feature so consumers can rely on route["geometry"]."""
    if not route or route.get("type") == "Feature" or "geometry" in route:
        return route
    return {"type": "Feature", "properties": {}, "geometry": route}


def route_endpoints(route: dict | None) -> tuple[list | None, list | None]:
    coords = route_coordinates(route)
    if not coords:
        return None, None
    return coords[0], coords[-1]


def geocoded_route(geo: GeoClient, origin_text: str, destination_text: str) -> dict | None:
    """Two-point LineString Feature from geocoding both ends; None if either end fails."""
    try:
        origin = geo.geocode(origin_text, 1)
        destination = geo.geocode(destination_text, 1)
    except UpstreamServiceError as e:
        logger.warning("geocoding failed, no route for %r -> %r: %s", origin_text, destination_text, e)
        return None
    if origin.get("lat") is None or destination.get("lat") is None:
        return None
    return {
        "type": "Feature",
        "properties": {
            "origin_address": origin.get("address") or origin_text,
            "destination_address": destination.get("address") or destination_text,
            "distance": 0,
            "duration": 0,
        },
        "geometry": {
            "type": "LineString",
            "coordinates": [[origin["lng"], origin["lat"]], [destination["lng"], destination["lat"]]],
        },
    }


# --- serialization --------------------------------------------------------

def serialize_trip(trip: Trip, driver: dict | None = None) -> dict:
    out = {
        "id": trip.id,
        "driver_id": trip.driver_id,
        "origin_text": trip.origin_text,
        "destination_text": trip.destination_text,
        "origin_point": trip.origin_point,
        "destination_point": trip.destination_point,
        "departure_timestamp": _iso(trip.departure_timestamp),
        "available_seats": trip.available_seats,
        "price": float(trip.price) if trip.price is not None else None,
        "description": trip.description,
        "route_geojson": trip.route_geojson,
        "created_at": _iso(trip.created_at),
        "updated_at": _iso(trip.updated_at),
    }
    if driver is not None:
        out["profiles"] = driver
    return out


def driver_summary(profile: Profile | None) -> dict:
    return profile.summary() if profile else dict(UNKNOWN_DRIVER)


# --- workflows --------------------------------------------------------------

def build_filters(origin=None, destination=None, min_price=None, max_price=None,
                  include_past: bool = False, now: datetime | None = None) -> TripFilters:
    now = now or datetime.now(timezone.utc)
    return TripFilters(
        origin=(origin or "").strip() or None,
        destination=(destination or "").strip() or None,
        min_price=parse_price(min_price),
        max_price=parse_price(max_price),
        departing_after=None if include_past else now,
    )


def list_trips(db: Session, *, page=None, limit=None, origin=None, destination=None,
               min_price=None, max_price=None, include_past: bool = False,
               now: datetime | None = None) -> dict:
    page, limit, offset = parse_pagination(page, limit)
    filters = build_filters(origin, destination, min_price, max_price, include_past, now)
    logger.info("listing trips page=%s limit=%s filters=%s", page, limit, filters)

    trips_repo = TripRepository(db)
    # count and page are separate reads; under concurrent writes they may disagree
    total = trips_repo.count(filters)
    trips = trips_repo.list_page(filters, offset, limit)
    drivers = ProfileRepository(db).get_many(t.driver_id for t in trips)

    return {
        "trips": [serialize_trip(t, driver_summary(drivers.get(t.driver_id))) for t in trips],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
        "filters": {
            "origin": origin or "",
            "destination": destination or "",
            "min_price": min_price or "",
            "max_price": max_price or "",
        },
    }


def get_trip_detail(db: Session, geo: GeoClient, trip_id: str, user_id: str | None = None,
                    now: datetime | None = None) -> dict:
    if not trip_id:
        raise ValidationError("Trip ID is required")
    if not is_valid_uuid(trip_id):
        raise ValidationError("Invalid trip ID format")

    now = now or datetime.now(timezone.utc)
    trip = TripRepository(db).get(trip_id)
    if not trip:
        raise NotFound("Trip not found", detail=f"No trip found with ID: {trip_id}")

    driver = ProfileRepository(db).get(trip.driver_id)
    if not driver:
        logger.info("driver profile %s not found, using defaults", trip.driver_id)
    data = serialize_trip(trip, driver_summary(driver))

    route = parse_route_geojson(trip.route_geojson)
    origin_point, destination_point = route_endpoints(route)
    if origin_point is None and trip.origin_text and trip.destination_text:
        logger.info("trip %s has no usable route, geocoding endpoints", trip.id)
        route = geocoded_route(geo, trip.origin_text, trip.destination_text)
        origin_point, destination_point = route_endpoints(route)

    has_route = origin_point is not None
    route = as_feature(route) if has_route else None
    data["route_geojson"] = route or {}
    data["origin_point"] = origin_point
    data["destination_point"] = destination_point
    data["geometry"] = route["geometry"] if has_route else None
    data["bookings_count"] = BookingRepository(db).count_for_trip(trip.id)

    departure = as_utc(trip.departure_timestamp)
    return {
        "trip": data,
        "isPastTrip": departure < now,
        "canBook": bool(user_id) and user_id != trip.driver_id and departure > now,
    }


def create_trip(db: Session, geo: GeoClient, driver_id: str, driver_metadata: dict | None,
                data: dict, now: datetime | None = None) -> Trip:
    errors = validate_trip(data, now)
    if errors:
        raise ValidationError(", ".join(errors), errors=errors)

    ProfileRepository(db).ensure(driver_id, driver_metadata)

    origin_text = str(data["origin_text"]).strip()
    destination_text = str(data["destination_text"]).strip()

    route = parse_route_geojson(data.get("route_geojson"))
    if route_coordinates(route) is None:
        route = geocoded_route(geo, origin_text, destination_text)
    route = as_feature(route)
    origin_point, destination_point = route_endpoints(route)

    trip = Trip(
        id=str(uuid.uuid4()),
        driver_id=driver_id,
        origin_text=origin_text,
        destination_text=destination_text,
        departure_timestamp=parse_timestamp(data["departure_timestamp"]),
        available_seats=int(str(data["available_seats"]).strip()),
        price=parse_price(data.get("price")),
        description=(str(data.get("description") or "").strip() or None),
        route_geojson=route if origin_point is not None else None,
        origin_point=origin_point,
        destination_point=destination_point,
    )
    TripRepository(db).add(trip)
    commit(db, "trips.create")
    db.refresh(trip)
    logger.info("trip %s created by %s (%s -> %s, route=%s)",
                trip.id, driver_id, origin_text, destination_text, "yes" if trip.route_geojson else "no")
    return trip


def home_feed(db: Session, user_id: str | None = None, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    trips, error = [], None
    try:
        rows = TripRepository(db).with_free_seats(FEATURED_LIMIT)
        drivers = ProfileRepository(db).get_many(t.driver_id for t in rows)
        trips = [serialize_trip(t, driver_summary(drivers.get(t.driver_id))) for t in rows]
    except CarpoolError as e:
        logger.error("featured trips unavailable: %s", e)
        error = "Unable to load trips at the moment. Please try again later."

    user_stats = None
    if user_id:
        try:
            since = now - timedelta(days=USER_STATS_DAYS)
            user_stats = {
                "upcomingTrips": TripRepository(db).count_upcoming_for_driver(user_id, now),
                "recentBookings": BookingRepository(db).count_recent_for_passenger(user_id, since),
            }
        except CarpoolError as e:
            logger.error("user stats unavailable for %s: %s", user_id, e)

    return {"trips": trips, "userStats": user_stats, "error": error}
