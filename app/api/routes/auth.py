from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.api.deps import get_token, require_auth
from app.core.config import settings
from app.db.session import get_db
from app.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
)
from app.services import auth_service
from app.services.auth_service import AuthUser

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        access_token,
        max_age=settings.AUTH_COOKIE_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


@router.post("/register", status_code=201)
def register(body: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    user, tokens = auth_service.register(
        db, body.email, body.password, body.password_confirm, body.full_name, body.phone,
        bio=body.bio, avatar_url=body.avatar_url,
    )
    _set_auth_cookie(response, tokens["access_token"])
    return {"user": user.to_dict(), **tokens}


@router.post("/login", response_model=TokenPair)
def login(body: LoginRequest, response: Response, db: Session = Depends(get_db)):
    _, tokens = auth_service.login(db, body.email, body.password)
    _set_auth_cookie(response, tokens["access_token"])
    return TokenPair(**tokens)


@router.post("/logout")
def logout(response: Response, token: str | None = Depends(get_token)):
    auth_service.logout(token)
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return {"ok": True}


@router.post("/refresh", response_model=TokenPair)
def refresh(body: RefreshRequest, response: Response, db: Session = Depends(get_db)):
    tokens = auth_service.refresh(db, body.refresh_token)
    _set_auth_cookie(response, tokens["access_token"])
    return TokenPair(**tokens)


@router.get("/me")
def me(user: AuthUser = Depends(require_auth)):
    return user.to_dict()


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """Same answer whether or not the account exists."""
    auth_service.request_password_reset(db, body.email)
    return {"ok": True, "message": "If an account exists for that email, a reset link has been sent."}


@router.post("/reset-password")
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_service.reset_password(db, body.token, body.password, body.password_confirm)
    return {"ok": True, "message": "Password updated. You can now sign in."}
