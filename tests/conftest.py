import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["OPENROUTESERVICE_API_KEY"] = ""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_geo_client
from app.core.security import create_access_token, hash_password
from app.db.session import Base, get_db
from app.main import app
from app.models.booking import Booking  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401
from app.models.profile import Profile  # noqa: F401
from app.models.trip import Trip
from app.models.user import User  # noqa: F401
from app.repositories.profiles import ProfileRepository
from app.repositories.users import UserRepository
from app.services import email_service
from app.services.auth_service import AuthUser, token_cache
from app.services.geo_client import GeoClient, GeoConfig


class FakeResponse:
    def __init__(self, status_code=200, payload=None, reason="OK", text=""):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Stands in for requests.Session: replays queued responses/exceptions, records calls."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if not self.outcomes:
            raise requests.ConnectionError("no more fake responses")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class PlacesSession(FakeSession):
    """Nominatim stand-in that answers /search from a fixed address book."""

    def __init__(self, places: dict):
        super().__init__()
        self.places = places

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        place = self.places.get((params or {}).get("q"))
        if place is None:
            return FakeResponse(payload=[])
        lat, lng = place
        return FakeResponse(payload=[{"lat": str(lat), "lon": str(lng), "display_name": params["q"], "address": {}}])


PLACES = {
    "Oakland, CA": (37.8044, -122.2711),
    "Sacramento, CA": (38.5816, -121.4944),
}


def make_geo(session, **cfg) -> GeoClient:
    return GeoClient(GeoConfig(**cfg), session=session, sleep=lambda s: None)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body, attachments: sent.append(
        {"to": to, "subject": subject, "body": body}))
    return sent


@pytest.fixture(autouse=True)
def _clear_token_cache():
    token_cache.clear()
    yield
    token_cache.clear()


@pytest.fixture()
def geo():
    return make_geo(PlacesSession(PLACES))


@pytest.fixture()
def client(session_factory, geo):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_geo_client] = lambda: geo
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    def _make(email=None, full_name="Test User", phone="555 123 4567", password="secret123",
              with_profile=True) -> AuthUser:
        email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
        meta = {"full_name": full_name, "phone": phone}
        user = UserRepository(db).add(email, hash_password(password), meta)
        if with_profile:
            ProfileRepository(db).ensure(user.id, meta)
        db.commit()
        return AuthUser.from_user(user)
    return _make


@pytest.fixture()
def make_trip(db):
    def _make(driver_id, seats=3, departure=None, price="10.00", origin="Oakland, CA",
              destination="Sacramento, CA", route_geojson=None, **kwargs) -> Trip:
        trip = Trip(
            id=str(uuid.uuid4()),
            driver_id=driver_id,
            origin_text=origin,
            destination_text=destination,
            departure_timestamp=departure or datetime.now(timezone.utc) + timedelta(days=1),
            available_seats=seats,
            price=Decimal(price) if price is not None else None,
            route_geojson=route_geojson,
            **kwargs,
        )
        db.add(trip)
        db.commit()
        return trip
    return _make


def auth_headers(user: AuthUser) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}", "Accept": "application/json"}
