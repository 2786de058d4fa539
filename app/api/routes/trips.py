from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.api.deps import get_geo_client, optional_auth, require_auth, wants_json
from app.core.config import settings
from app.core.errors import CarpoolError
from app.db.session import get_db
from app.schemas.trip import TripCreate
from app.services import trip_service
from app.services.auth_service import AuthUser
from app.services.booking_service import book_seat
from app.services.geo_client import GeoClient


router = APIRouter(prefix="/trips", tags=["trips"])

# failure codes whose redirect carries the underlying reason
_DETAILED_CODES = ("profile_failed", "booking_failed")


@router.get("")
def list_trips(
    page: str | None = None,
    limit: str | None = None,
    origin: str | None = None,
    destination: str | None = None,
    min_price: str | None = None,
    max_price: str | None = None,
    include_past: bool = False,
    db: Session = Depends(get_db),
):
    return trip_service.list_trips(
        db, page=page, limit=limit, origin=origin, destination=destination,
        min_price=min_price, max_price=max_price, include_past=include_past,
    )


@router.post("", status_code=201)
def create_trip(
    body: TripCreate,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db),
    geo: GeoClient = Depends(get_geo_client),
):
    trip = trip_service.create_trip(db, geo, user.id, user.metadata, body.model_dump())
    return {"trip": trip_service.serialize_trip(trip)}


@router.get("/{trip_id}")
def trip_detail(
    trip_id: str,
    user: AuthUser | None = Depends(optional_auth),
    db: Session = Depends(get_db),
    geo: GeoClient = Depends(get_geo_client),
):
    detail = trip_service.get_trip_detail(db, geo, trip_id, user.id if user else None)
    detail["user"] = user.to_dict() if user else None
    return detail


@router.post("/{trip_id}/book")
def book_trip(
    trip_id: str,
    request: Request,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db),
):
    as_json = wants_json(request)
    try:
        confirmation = book_seat(db, trip_id, user)
    except CarpoolError as e:
        if as_json:
            raise
        params = {"error": e.code}
        if e.code in _DETAILED_CODES:
            params["details"] = e.message if settings.is_production else (e.detail or e.message)
        return RedirectResponse(f"/trips/{trip_id}?{urlencode(params)}", status_code=303)

    if as_json:
        return JSONResponse(confirmation, status_code=201)
    return RedirectResponse(f"/bookings/{confirmation['booking']['id']}", status_code=303)
