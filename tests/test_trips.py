import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import NotFound, ValidationError
from app.services.trip_service import (
    create_trip,
    get_trip_detail,
    home_feed,
    list_trips,
    parse_pagination,
    route_endpoints,
)
from app.repositories.trips import TripFilters, TripRepository
from app.services.booking_service import book_seat
from conftest import FakeSession, make_geo

ROUTE = {
    "type": "Feature",
    "properties": {},
    "geometry": {"type": "LineString", "coordinates": [[-122.27, 37.80], [-122.0, 38.0], [-121.49, 38.58]]},
}


@pytest.fixture()
def driver(make_user):
    return make_user(full_name="Dana Driver")


@pytest.mark.parametrize("page,limit,expected", [
    (None, None, (1, 10, 0)),
    ("3", "5", (3, 5, 10)),
    ("0", "500", (1, 50, 0)),
    ("-2", "0", (1, 10, 0)),
    ("abc", "xyz", (1, 10, 0)),
])
def test_parse_pagination(page, limit, expected):
    assert parse_pagination(page, limit) == expected


def test_pagination_over_25_trips(db, driver, make_trip):
    base = datetime.now(timezone.utc) + timedelta(days=1)
    for i in range(25):
        make_trip(driver.id, departure=base + timedelta(hours=i))

    out = list_trips(db, page="1", limit="10")
    assert len(out["trips"]) == 10
    assert out["pagination"] == {"page": 1, "limit": 10, "total": 25, "totalPages": 3}

    last = list_trips(db, page="3", limit="10")
    assert len(last["trips"]) == 5

    departures = [t["departure_timestamp"] for t in out["trips"]]
    assert departures == sorted(departures)
    assert out["trips"][0]["profiles"]["full_name"] == "Dana Driver"


def test_past_trips_hidden_by_default(db, driver, make_trip):
    make_trip(driver.id, departure=datetime.now(timezone.utc) - timedelta(days=1))
    make_trip(driver.id)
    assert list_trips(db)["pagination"]["total"] == 1
    assert list_trips(db, include_past=True)["pagination"]["total"] == 2


def test_text_filters_are_case_insensitive_and_literal(db, driver, make_trip):
    make_trip(driver.id, origin="Oakland, CA")
    make_trip(driver.id, origin="100% Plaza")
    make_trip(driver.id, origin="100 Main")

    assert list_trips(db, origin="oakLAND")["pagination"]["total"] == 1
    assert list_trips(db, origin="100%")["pagination"]["total"] == 1
    assert list_trips(db, origin="_")["pagination"]["total"] == 0


def test_price_bounds_are_inclusive(db, driver, make_trip):
    for price in ("5.00", "10.00", "15.00"):
        make_trip(driver.id, price=price)
    out = list_trips(db, min_price="10", max_price="15")
    assert sorted(t["price"] for t in out["trips"]) == [10.0, 15.0]
    # unparseable bounds are ignored
    assert list_trips(db, min_price="cheap")["pagination"]["total"] == 3


def test_empty_listing(db):
    out = list_trips(db)
    assert out["trips"] == []
    assert out["pagination"]["totalPages"] == 0


def test_detail_uses_stored_route(db, driver, make_user, make_trip):
    trip = make_trip(driver.id, route_geojson=ROUTE)
    rider = make_user()
    session = FakeSession()
    out = get_trip_detail(db, make_geo(session), trip.id, rider.id)

    assert out["trip"]["origin_point"] == [-122.27, 37.80]
    assert out["trip"]["destination_point"] == [-121.49, 38.58]
    assert out["trip"]["geometry"]["type"] == "LineString"
    assert out["isPastTrip"] is False
    assert out["canBook"] is True
    assert session.calls == []


def test_detail_accepts_route_as_json_string(db, driver, make_trip):
    trip = make_trip(driver.id, route_geojson=json.dumps(ROUTE))
    out = get_trip_detail(db, make_geo(FakeSession()), trip.id)
    assert out["trip"]["origin_point"] == [-122.27, 37.80]
    assert out["canBook"] is False


def test_detail_geocodes_when_route_missing(db, driver, geo, make_trip):
    trip = make_trip(driver.id)
    out = get_trip_detail(db, geo, trip.id, driver.id)

    assert out["trip"]["origin_point"] == [-122.2711, 37.8044]
    assert out["trip"]["destination_point"] == [-121.4944, 38.5816]
    assert out["trip"]["route_geojson"]["properties"]["distance"] == 0
    # drivers can't book their own trip
    assert out["canBook"] is False


def test_detail_survives_geocoding_failure(db, driver, make_trip):
    trip = make_trip(driver.id, origin="Nowhere", destination="Elsewhere")
    out = get_trip_detail(db, make_geo(FakeSession()), trip.id)
    assert out["trip"]["geometry"] is None
    assert out["trip"]["route_geojson"] == {}


def test_detail_of_past_trip(db, driver, make_user, make_trip):
    trip = make_trip(driver.id, departure=datetime.now(timezone.utc) - timedelta(hours=1), route_geojson=ROUTE)
    out = get_trip_detail(db, make_geo(FakeSession()), trip.id, make_user().id)
    assert out["isPastTrip"] is True
    assert out["canBook"] is False


def test_detail_unknown_driver(db, make_user, make_trip):
    ghost = make_user(with_profile=False)
    trip = make_trip(ghost.id, route_geojson=ROUTE)
    out = get_trip_detail(db, make_geo(FakeSession()), trip.id)
    assert out["trip"]["profiles"]["full_name"] == "Unknown Driver"


def test_detail_rejects_bad_ids(db, geo):
    with pytest.raises(ValidationError):
        get_trip_detail(db, geo, "nope")
    with pytest.raises(NotFound):
        get_trip_detail(db, geo, str(uuid.uuid4()))


def trip_payload(**overrides):
    data = {
        "origin_text": "Oakland, CA",
        "destination_text": "Sacramento, CA",
        "departure_timestamp": (datetime.now(timezone.utc) + timedelta(days=2)).isoformat(),
        "available_seats": "3",
        "price": "12.5",
        "description": "  Leaving from the BART station  ",
    }
    data.update(overrides)
    return data


def test_create_trip_geocodes_route(db, driver, geo):
    trip = create_trip(db, geo, driver.id, driver.metadata, trip_payload())
    assert trip.available_seats == 3
    assert float(trip.price) == 12.5
    assert trip.description == "Leaving from the BART station"
    assert trip.origin_point == [-122.2711, 37.8044]
    assert trip.route_geojson["geometry"]["type"] == "LineString"


def test_create_trip_keeps_supplied_route(db, driver):
    session = FakeSession()
    trip = create_trip(db, make_geo(session), driver.id, driver.metadata, trip_payload(route_geojson=ROUTE))
    assert trip.destination_point == [-121.49, 38.58]
    assert session.calls == []


def test_create_trip_without_geocoding_results(db, driver):
    trip = create_trip(db, make_geo(FakeSession()), driver.id, driver.metadata,
                       trip_payload(origin_text="Atlantis", destination_text="El Dorado"))
    assert trip.route_geojson is None
    assert trip.origin_point is None


def test_create_trip_validation(db, driver, geo):
    with pytest.raises(ValidationError) as exc:
        create_trip(db, geo, driver.id, driver.metadata, trip_payload(available_seats="9", origin_text=""))
    assert exc.value.errors == ["Origin address is required", "Number of seats must be between 1 and 7"]

def test_list_page_orders_by_departure(db, driver, make_trip):
    now = datetime.now(timezone.utc)
    later = make_trip(driver.id, departure=now + timedelta(days=3))
    sooner = make_trip(driver.id, departure=now + timedelta(days=1))
    repo = TripRepository(db)
    assert [t.id for t in repo.list_page(TripFilters(), 0, 10)] == [sooner.id, later.id]
    assert [t.id for t in repo.list_page(TripFilters(), 1, 10)] == [later.id]


def test_create_trip_wraps_bare_geometry(db, driver):
    line = {"type": "LineString", "coordinates": [[1, 2], [3, 4]]}
    trip = create_trip(db, make_geo(FakeSession()), driver.id, driver.metadata, trip_payload(route_geojson=line))
    assert trip.route_geojson == {"type": "Feature", "properties": {}, "geometry": line}

    out = get_trip_detail(db, make_geo(FakeSession()), trip.id)
    assert out["trip"]["origin_point"] == [1.0, 2.0]
    assert out["trip"]["geometry"] == line


def test_detail_of_stored_bare_geometry(db, driver, make_trip):
    line = {"type": "LineString", "coordinates": [[5, 6], [7, 8]]}
    trip = make_trip(driver.id, route_geojson=line)
    out = get_trip_detail(db, make_geo(FakeSession()), trip.id)
    assert out["trip"]["geometry"] == line
    assert out["trip"]["route_geojson"]["type"] == "Feature"



def test_route_endpoints_need_two_points():
    assert route_endpoints({"type": "LineString", "coordinates": [[1, 2]]}) == (None, None)
    assert route_endpoints({"type": "LineString", "coordinates": [[1, 2], [3, 4]]}) == ([1.0, 2.0], [3.0, 4.0])
    assert route_endpoints(None) == (None, None)


def test_home_feed(db, driver, make_user, make_trip):
    rider = make_user()
    make_trip(driver.id, seats=0)
    booked = make_trip(driver.id, seats=2)
    make_trip(driver.id, seats=1)
    book_seat(db, booked.id, rider)

    feed = home_feed(db, rider.id)
    assert len(feed["trips"]) == 2
    assert all(t["available_seats"] > 0 for t in feed["trips"])
    assert feed["userStats"] == {"upcomingTrips": 0, "recentBookings": 1}
    assert feed["error"] is None

    assert home_feed(db, driver.id)["userStats"]["upcomingTrips"] == 3
    assert home_feed(db)["userStats"] is None
