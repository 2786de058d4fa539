from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, func, or_

from app.models.trip import Trip
from app.repositories.base import Repository, store_call


@dataclass
class TripFilters:
    origin: str | None = None
    destination: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    departing_after: datetime | None = None  # None lists past trips too

    def clauses(self) -> list:
        out = []
        if self.departing_after is not None:
            out.append(Trip.departure_timestamp >= self.departing_after)
        if self.origin:
            out.append(func.lower(Trip.origin_text).contains(self.origin.lower(), autoescape=True))
        if self.destination:
            out.append(func.lower(Trip.destination_text).contains(self.destination.lower(), autoescape=True))
        if self.min_price is not None:
            out.append(Trip.price >= self.min_price)
        if self.max_price is not None:
            out.append(Trip.price <= self.max_price)
        return out


class TripRepository(Repository):

    def get(self, trip_id: str) -> Trip | None:
        with store_call(self.db, "trips.get"):
            return self.db.get(Trip, trip_id)

    def list_page(self, filters: TripFilters, offset: int, limit: int) -> list[Trip]:
        q = (
            select(Trip)
            .where(*filters.clauses())
            .order_by(Trip.departure_timestamp.asc(), Trip.id.asc())
            .offset(offset)
            .limit(limit)
        )
        with store_call(self.db, "trips.list_page"):
            return list(self.db.execute(q).scalars().all())

    def count(self, filters: TripFilters) -> int:
        q = select(func.count()).select_from(Trip).where(*filters.clauses())
        with store_call(self.db, "trips.count"):
            return int(self.db.execute(q).scalar_one())

    def with_free_seats(self, limit: int) -> list[Trip]:
        q = (
            select(Trip)
            .where(Trip.available_seats > 0)
            .order_by(Trip.departure_timestamp.asc())
            .limit(limit)
        )
        with store_call(self.db, "trips.with_free_seats"):
            return list(self.db.execute(q).scalars().all())

    def count_upcoming_for_driver(self, driver_id: str, now: datetime) -> int:
        q = select(func.count()).select_from(Trip).where(
            Trip.driver_id == driver_id, Trip.departure_timestamp > now
        )
        with store_call(self.db, "trips.count_upcoming_for_driver"):
            return int(self.db.execute(q).scalar_one())

    def add(self, trip: Trip) -> Trip:
        self.db.add(trip)
        with store_call(self.db, "trips.add"):
            self.db.flush()
        return trip

    def reserve_seat(self, trip_id: str) -> bool:
        """Atomically take one seat. False when the trip has none left (or vanished).

        The WHERE clause is the guard: concurrent callers serialize on the row
        and only those that still see available_seats > 0 affect it.
        """
        stmt = (
            update(Trip)
            .where(Trip.id == trip_id, Trip.available_seats > 0)
            .values(available_seats=Trip.available_seats - 1)
            .execution_options(synchronize_session=False)
        )
        with store_call(self.db, "trips.reserve_seat"):
            result = self.db.execute(stmt)
        return result.rowcount == 1

    def missing_points(self, limit: int, offset: int = 0) -> list[Trip]:
        q = (
            select(Trip)
            .where(Trip.route_geojson.is_not(None))
            .where(or_(Trip.origin_point.is_(None), Trip.destination_point.is_(None)))
            .order_by(Trip.id.asc())
            .offset(offset)
            .limit(limit)
        )
        with store_call(self.db, "trips.missing_points"):
            return list(self.db.execute(q).scalars().all())

    def ping(self) -> None:
        with store_call(self.db, "trips.ping"):
            self.db.execute(select(Trip.id).limit(1)).first()
