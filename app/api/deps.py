from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuthRequired
from app.db.session import get_db
from app.services.auth_service import AuthUser, resolve_user
from app.services.geo_client import GeoClient, GeoConfig

bearer = HTTPBearer(auto_error=False)


def get_geo_client():
    # requests.Session is not thread-safe; one client per request
    geo = GeoClient(GeoConfig.from_settings(settings))
    try:
        yield geo
    finally:
        geo.close()


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "").lower()


def get_token(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> str | None:
    """The auth cookie wins over an Authorization: Bearer header."""
    cookie = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if cookie:
        return cookie
    return creds.credentials if creds else None


def optional_auth(
    token: str | None = Depends(get_token),
    db: Session = Depends(get_db),
) -> AuthUser | None:
    return resolve_user(db, token)


def require_auth(user: AuthUser | None = Depends(optional_auth)) -> AuthUser:
    # rendered as 401 or a login redirect by the AuthRequired handler in main
    if not user:
        raise AuthRequired("Not authenticated")
    return user
