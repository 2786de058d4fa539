"""Seat booking.

Eligibility checks run as plain reads. The seat decrement and the booking
insert then happen in one transaction: the decrement is a conditional UPDATE
guarded by ``available_seats > 0`` and the insert is guarded by the unique
(trip_id, passenger_id) constraint, so concurrent callers can neither
oversell a trip nor book it twice.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AlreadyBooked,
    NoSeatsAvailable,
    NotFound,
    SelfBookingDenied,
    StoreError,
    ValidationError,
)
from app.repositories.base import commit
from app.repositories.bookings import BookingRepository
from app.repositories.profiles import ProfileRepository
from app.repositories.trips import TripRepository
from app.services.auth_service import AuthUser
from app.services.trip_service import as_utc, serialize_trip
from app.services.validators import is_valid_uuid

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = {"full_name": "Driver"}


def _ensure_passenger_profile(db: Session, user: AuthUser) -> None:
    try:
        _, created = ProfileRepository(db).ensure(user.id, user.metadata)
        if created:
            commit(db, "profiles.ensure")
            logger.info("created profile for %s before booking", user.id)
    except IntegrityError:
        # another request created it between our read and insert
        logger.info("profile %s created concurrently", user.id)
    except StoreError as e:
        raise StoreError("Failed to create user profile", detail=e.detail, code="profile_failed") from e


def book_seat(db: Session, trip_id: str, user: AuthUser) -> dict:
    if not trip_id or not is_valid_uuid(trip_id):
        raise ValidationError("Invalid trip ID format", code="invalid_trip_id")

    _ensure_passenger_profile(db, user)

    trips = TripRepository(db)
    bookings = BookingRepository(db)

    try:
        trip = trips.get(trip_id)
        if not trip:
            raise NotFound("Trip not found", code="trip_not_found")
        if trip.driver_id == user.id:
            raise SelfBookingDenied("You cannot book your own trip")
        if trip.available_seats <= 0:
            raise NoSeatsAvailable("No seats available on this trip")
        if bookings.exists(trip_id, user.id):
            raise AlreadyBooked("You have already booked this trip")
    except StoreError as e:
        raise StoreError("Failed to create booking", detail=e.detail, code="booking_failed") from e

    try:
        if not trips.reserve_seat(trip_id):
            db.rollback()
            logger.info("seat race lost on trip %s by %s", trip_id, user.id)
            raise NoSeatsAvailable("No seats available on this trip")
        booking = bookings.add(trip_id, user.id)
        commit(db, "bookings.create")
    except IntegrityError:
        # store_call already rolled back, taking the decrement with it
        logger.info("duplicate booking on trip %s by %s", trip_id, user.id)
        raise AlreadyBooked("You have already booked this trip")
    except StoreError as e:
        raise StoreError("Failed to create booking", detail=e.detail, code="booking_failed") from e

    logger.info("booking %s created: trip=%s passenger=%s", booking.id, trip_id, user.id)
    return get_confirmation(db, booking.id, user.id)


def get_confirmation(db: Session, booking_id: str, user_id: str) -> dict:
    """Confirmation for the passenger or the trip's driver; NotFound for anyone else."""
    if not is_valid_uuid(booking_id):
        raise ValidationError("Invalid booking ID format")

    booking = BookingRepository(db).get(booking_id)
    if not booking:
        raise NotFound("Booking not found", code="booking_not_found")

    trip = TripRepository(db).get(booking.trip_id)
    if not trip or user_id not in (booking.passenger_id, trip.driver_id):
        raise NotFound("Booking not found", code="booking_not_found")
    db.refresh(trip)

    driver = ProfileRepository(db).get(trip.driver_id)
    return {
        "booking": {
            "id": booking.id,
            "trip_id": booking.trip_id,
            "passenger_id": booking.passenger_id,
            "booked_at": as_utc(booking.booked_at).isoformat() if booking.booked_at else None,
        },
        "trip": serialize_trip(trip),
        "driver": driver.summary() if driver else dict(DEFAULT_DRIVER),
    }
