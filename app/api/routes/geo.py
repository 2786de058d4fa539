import math
import re

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_geo_client
from app.core.config import settings
from app.core.errors import CarpoolError, UpstreamServiceError, ValidationError
from app.db.session import get_db
from app.schemas.geo import GeocodeRequest, RouteRequest
from app.services.geo_client import GeoClient, validate_api_key

router = APIRouter(prefix="/api", tags=["geo"])


def _coords(point, name: str) -> dict:
    try:
        lat, lng = float(point["lat"]), float(point["lng"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError(f"Invalid {name} coordinates")
    if not (math.isfinite(lat) and math.isfinite(lng)) or abs(lat) > 90 or abs(lng) > 180:
        raise ValidationError(f"Invalid {name} coordinates")
    return {"lat": lat, "lng": lng}


def _mask_url(url: str) -> str:
    return re.sub(r"//([^:/@]+):[^@]*@", r"//\1:***@", url or "")


@router.post("/geocode")
def geocode(body: GeocodeRequest, geo: GeoClient = Depends(get_geo_client)):
    address = (body.address or "").strip()
    if not address:
        raise ValidationError("Address is required")
    try:
        return geo.geocode(address, max(1, body.limit))
    except UpstreamServiceError as e:
        raise CarpoolError("Geocoding is temporarily unavailable, please try again", detail=e.message,
                           code="geocode_failed")


@router.post("/route")
def route(body: RouteRequest, geo: GeoClient = Depends(get_geo_client)):
    origin = _coords(body.origin, "origin")
    destination = _coords(body.destination, "destination")
    return geo.route(origin, destination)


@router.get("/health")
def health(db: Session = Depends(get_db), geo: GeoClient = Depends(get_geo_client)):
    report = geo.check_health(db)
    return JSONResponse(report, status_code=200 if report["status"] == "healthy" else 503)


@router.get("/status")
def status():
    return {
        "environment": settings.ENV,
        "openrouteservice": {
            "configured": bool(settings.OPENROUTESERVICE_API_KEY),
            "valid": validate_api_key(settings.OPENROUTESERVICE_API_KEY, "openrouteservice"),
        },
        "database": {"configured": bool(settings.DATABASE_URL), "url": _mask_url(settings.DATABASE_URL)},
    }
