import uuid
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from app.models.booking import Booking
from app.repositories.base import Repository, store_call


class BookingRepository(Repository):

    def get(self, booking_id: str) -> Booking | None:
        with store_call(self.db, "bookings.get"):
            return self.db.get(Booking, booking_id)

    def exists(self, trip_id: str, passenger_id: str) -> bool:
        q = select(Booking.id).where(Booking.trip_id == trip_id, Booking.passenger_id == passenger_id).limit(1)
        with store_call(self.db, "bookings.exists"):
            return self.db.execute(q).first() is not None

    def add(self, trip_id: str, passenger_id: str) -> Booking:
        """Insert a booking row. A duplicate (trip, passenger) pair raises IntegrityError."""
        booking = Booking(id=str(uuid.uuid4()), trip_id=trip_id, passenger_id=passenger_id)
        self.db.add(booking)
        with store_call(self.db, "bookings.add", passthrough=(IntegrityError,)):
            self.db.flush()
        return booking

    def count_for_trip(self, trip_id: str) -> int:
        q = select(func.count()).select_from(Booking).where(Booking.trip_id == trip_id)
        with store_call(self.db, "bookings.count_for_trip"):
            return int(self.db.execute(q).scalar_one())

    def count_recent_for_passenger(self, passenger_id: str, since: datetime) -> int:
        q = select(func.count()).select_from(Booking).where(
            Booking.passenger_id == passenger_id, Booking.booked_at > since
        )
        with store_call(self.db, "bookings.count_recent_for_passenger"):
            return int(self.db.execute(q).scalar_one())
