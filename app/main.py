import logging
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from app.api.api import api_router
from app.api.deps import wants_json
from app.core.config import settings
from app.core.errors import AuthRequired, CarpoolError, StoreError, ValidationError
from app.core.log_config import configure_logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

GENERIC_STORE_MESSAGE = "Something went wrong, please try again later"

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = ["http://127.0.0.1:3000", "http://localhost:3000"]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_body(exc: CarpoolError) -> dict:
    body = {"error": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError) and len(exc.errors) > 1:
        body["errors"] = exc.errors
    if exc.detail and not settings.is_production:
        body["details"] = exc.detail
    return body


@app.exception_handler(AuthRequired)
def auth_required_handler(request: Request, exc: AuthRequired):
    # only the route guard redirects; bad credentials on /auth/* always answer 401
    if exc.code == "auth_required" and not wants_json(request):
        target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
        response = RedirectResponse(f"/auth/login?redirect={quote(target, safe='')}", status_code=303)
    else:
        response = JSONResponse(error_body(exc), status_code=exc.status_code)
    if request.cookies.get(settings.AUTH_COOKIE_NAME):
        response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return response


@app.exception_handler(CarpoolError)
def carpool_error_handler(request: Request, exc: CarpoolError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    body = error_body(exc)
    if isinstance(exc, StoreError) and exc.code == "store_error":
        body["message"] = GENERIC_STORE_MESSAGE
    return JSONResponse(body, status_code=exc.status_code)


app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok"}
