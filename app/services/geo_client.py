"""Geocoding and routing over Nominatim and OpenRouteService.

Every outbound call goes through GeoClient.fetch, which adds a timeout and a
bounded retry for transient failures (timeouts, connection resets/refusals,
DNS failures, 5xx). Routing degrades to a straight-line estimate whenever the
provider is unconfigured or fails; geocoding failures surface as
UpstreamServiceError.
"""
import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import requests
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import StoreError, UpstreamServiceError
from app.repositories.trips import TripRepository

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
AVG_SPEED_KMH = 50
USER_AGENT = "Carpool-Connect/1.0"

TIMEOUT_DEFAULT = 10
TIMEOUT_SHORT = 5
TIMEOUT_LONG = 15
RETRIES_DEFAULT = 2
RETRY_DELAY_SECONDS = 1.0

_ORS_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class GeoConfig:
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    ors_url: str = "https://api.openrouteservice.org"
    ors_api_key: str = ""
    retries: int = RETRIES_DEFAULT
    retry_delay: float = RETRY_DELAY_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeoConfig":
        return cls(
            nominatim_url=settings.NOMINATIM_BASE_URL.rstrip("/"),
            ors_url=settings.OPENROUTESERVICE_BASE_URL.rstrip("/"),
            ors_api_key=settings.OPENROUTESERVICE_API_KEY or "",
        )


def validate_api_key(api_key, service: str = "openrouteservice") -> bool:
    if not api_key or not isinstance(api_key, str):
        return False
    if service == "openrouteservice":
        return len(api_key) >= 50 and bool(_ORS_KEY_RE.match(api_key))
    return len(api_key) > 0


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(exc, UpstreamServiceError):
        return exc.retryable
    return False


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def simple_route(origin: dict, destination: dict) -> dict:
    """Straight-line route estimate. Distance in metres, duration in seconds."""
    o_lat, o_lng = float(origin["lat"]), float(origin["lng"])
    d_lat, d_lng = float(destination["lat"]), float(destination["lng"])
    distance_km = haversine_km(o_lat, o_lng, d_lat, d_lng)
    duration_s = distance_km / AVG_SPEED_KMH * 3600
    logger.info("straight-line route: %.2f km, %d min", distance_km, round(duration_s / 60))
    return {
        "distance": distance_km * 1000,
        "duration": duration_s,
        "geometry": {"type": "LineString", "coordinates": [[o_lng, o_lat], [d_lng, d_lat]]},
        "bbox": [min(o_lng, d_lng), min(o_lat, d_lat), max(o_lng, d_lng), max(o_lat, d_lat)],
    }


class GeoClient:
    def __init__(self, cfg: GeoConfig, session: requests.Session | None = None, sleep=time.sleep):
        self.cfg = cfg
        self.session = session or requests.Session()
        self._sleep = sleep

    def close(self):
        self.session.close()

    @property
    def routing_configured(self) -> bool:
        return validate_api_key(self.cfg.ors_api_key, "openrouteservice")

    def fetch(self, url: str, params: dict | None = None, timeout: float = TIMEOUT_DEFAULT,
              retries: int | None = None) -> requests.Response:
        retries = self.cfg.retries if retries is None else retries
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        attempt = 0
        while True:
            attempt += 1
            try:
                r = self.session.get(url, params=params, headers=headers, timeout=timeout)
                if not r.ok:
                    raise UpstreamServiceError(
                        f"HTTP {r.status_code}: {r.reason}",
                        status=r.status_code,
                        retryable=r.status_code >= 500,
                    )
                logger.debug("fetch ok: %s (%s)", url, r.status_code)
                return r
            except (requests.RequestException, UpstreamServiceError) as e:
                if attempt <= retries and is_retryable(e):
                    logger.warning("request to %s failed (%s), retrying (%d left)", url, e, retries - attempt + 1)
                    self._sleep(self.cfg.retry_delay)
                    continue
                logger.error("request to %s failed after %d attempt(s): %s", url, attempt, e)
                if isinstance(e, UpstreamServiceError):
                    raise
                raise UpstreamServiceError(str(e), retryable=is_retryable(e)) from e

    @staticmethod
    def _json(r: requests.Response):
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamServiceError("invalid JSON from upstream", detail=r.text[:200]) from e

    def geocode(self, address: str, limit: int = 1) -> dict:
        logger.info("geocoding %r (limit=%s)", address, limit)
        r = self.fetch(
            f"{self.cfg.nominatim_url}/search",
            params={"format": "json", "q": address, "limit": limit, "addressdetails": 1},
            timeout=TIMEOUT_SHORT,
        )
        data = self._json(r)
        if not data:
            logger.info("no geocoding results for %r", address)
            return {"suggestions": []}

        try:
            suggestions = []
            for item in data:
                details = item.get("address") or {}
                suggestions.append({
                    "address": item.get("display_name") or address,
                    "coords": {"lat": float(item["lat"]), "lng": float(item["lon"])},
                    "county": details.get("county") or details.get("suburb") or "",
                    "region": details.get("state") or details.get("region") or "",
                    "country": details.get("country") or "",
                })
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamServiceError("unexpected geocoding payload", detail=str(e)) from e

        if limit == 1:
            best = suggestions[0]
            return {"lat": best["coords"]["lat"], "lng": best["coords"]["lng"], "address": best["address"]}
        return {"suggestions": suggestions}

    def provider_route(self, origin: dict, destination: dict) -> dict:
        r = self.fetch(
            f"{self.cfg.ors_url}/v2/directions/driving-car",
            params={
                "api_key": self.cfg.ors_api_key,
                "start": f"{origin['lng']},{origin['lat']}",
                "end": f"{destination['lng']},{destination['lat']}",
            },
            timeout=TIMEOUT_LONG,
        )
        data = self._json(r)
        features = data.get("features") or []
        if not features:
            raise UpstreamServiceError("No route found between points")
        feature = features[0]
        try:
            summary = feature["properties"]["summary"]
            coords = feature["geometry"]["coordinates"]
            out = {
                "distance": float(summary.get("distance", 0)),
                "duration": float(summary.get("duration", 0)),
                "geometry": {"type": "LineString", "coordinates": coords},
                "bbox": data.get("bbox") or feature.get("bbox"),
            }
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamServiceError("unexpected routing payload", detail=str(e)) from e
        logger.info("provider route: %.0f m, %d min", out["distance"], round(out["duration"] / 60))
        return out

    def route(self, origin: dict, destination: dict) -> dict:
        if self.routing_configured:
            try:
                return self.provider_route(origin, destination)
            except UpstreamServiceError as e:
                logger.warning("routing provider failed, using straight-line estimate: %s", e)
        return simple_route(origin, destination)

    def reverse_geocode(self, lat: float, lng: float) -> dict | None:
        if not self.cfg.ors_api_key:
            logger.warning("reverse geocoding skipped: no routing provider key")
            return None
        r = self.fetch(
            f"{self.cfg.ors_url}/geocode/reverse",
            params={"api_key": self.cfg.ors_api_key, "point.lat": lat, "point.lon": lng, "size": 1},
            timeout=TIMEOUT_SHORT,
        )
        return self._json(r)

    def check_health(self, db: Session) -> dict:
        health = {
            "database": {"status": "unknown", "error": None, "responseTime": None},
            "openrouteservice": {"status": "unknown", "error": None, "responseTime": None},
        }

        start = time.monotonic()
        try:
            TripRepository(db).ping()
            health["database"]["status"] = "healthy"
            health["database"]["responseTime"] = round((time.monotonic() - start) * 1000)
        except StoreError as e:
            logger.error("database health check failed: %s", e)
            health["database"]["status"] = "unhealthy"
            health["database"]["error"] = str(e)

        if self.routing_configured:
            start = time.monotonic()
            try:
                self.fetch(f"{self.cfg.ors_url}/health", timeout=TIMEOUT_SHORT, retries=0)
                health["openrouteservice"]["status"] = "healthy"
                health["openrouteservice"]["responseTime"] = round((time.monotonic() - start) * 1000)
            except UpstreamServiceError as e:
                health["openrouteservice"]["status"] = "unhealthy"
                health["openrouteservice"]["error"] = str(e)
        else:
            health["openrouteservice"]["status"] = "not_configured"

        healthy = all(s["status"] in ("healthy", "not_configured") for s in health.values())
        return {
            "status": "healthy" if healthy else "degraded",
            "services": health,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
