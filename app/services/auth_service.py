import logging
import threading
import time
from dataclasses import dataclass, field

from jose import JWTError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuthRequired, EmailTaken, ValidationError
from app.core.security import (
    create_access_token,
    create_refresh_token,
    create_reset_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.repositories.base import commit
from app.repositories.profiles import ProfileRepository
from app.repositories.users import UserRepository
from app.services import email_service
from app.services.validators import (
    MIN_PASSWORD_LENGTH,
    validate_login,
    validate_password_change,
    validate_profile_update,
    validate_registration,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_user(cls, user: User) -> "AuthUser":
        return cls(id=user.id, email=user.email, metadata=dict(user.user_metadata or {}))

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "user_metadata": self.metadata}


class TokenCache:
    """Token -> AuthUser with a fixed time-to-live. ttl <= 0 disables caching.

    Expired entries are swept from put() at most once per ttl, and the map
    never holds more than max_entries (oldest insertions go first).
    """

    def __init__(self, ttl_seconds: float, clock=time.monotonic, max_entries: int = 10_000):
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, AuthUser]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def get(self, token: str) -> AuthUser | None:
        if self.ttl <= 0:
            return None
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            expires_at, user = entry
            if expires_at <= self._clock():
                del self._entries[token]
                return None
            return user

    def put(self, token: str, user: AuthUser) -> None:
        if self.ttl <= 0:
            return
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + self.ttl
            self._entries.pop(token, None)
            while len(self._entries) >= self.max_entries:
                del self._entries[next(iter(self._entries))]
            self._entries[token] = (now + self.ttl, user)

    def _sweep(self, now: float) -> None:
        expired = [t for t, (expires_at, _) in self._entries.items() if expires_at <= now]
        for t in expired:
            del self._entries[t]

    def evict(self, token: str) -> None:
        with self._lock:
            self._entries.pop(token, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


token_cache = TokenCache(settings.AUTH_CACHE_TTL_SECONDS)


def resolve_user(db: Session, token: str | None, cache: TokenCache | None = None) -> AuthUser | None:
    """Validate an access token against the account store. None when invalid."""
    if not token:
        return None
    cache = token_cache if cache is None else cache
    cached = cache.get(token)
    if cached:
        return cached

    try:
        payload = decode_token(token, expected_type="access")
    except JWTError as e:
        logger.info("rejected access token: %s", e)
        return None

    user = UserRepository(db).get(payload.get("sub") or "")
    if not user or not user.is_active:
        logger.info("token subject %s missing or inactive", payload.get("sub"))
        return None

    auth_user = AuthUser.from_user(user)
    cache.put(token, auth_user)
    return auth_user


def issue_tokens(user_id: str) -> dict:
    return {
        "access_token": create_access_token(user_id),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
    }


def register(db: Session, email, password, password_confirm, full_name, phone,
             bio: str | None = None, avatar_url: str | None = None) -> tuple[AuthUser, dict]:
    errors = validate_registration(email, password, password_confirm, full_name, phone)
    if errors:
        raise ValidationError(", ".join(errors), errors=errors)

    users = UserRepository(db)
    if users.get_by_email(email):
        raise EmailTaken("An account with this email already exists")

    metadata = {
        "full_name": full_name.strip(),
        "phone": phone.strip(),
        "bio": (bio or "").strip(),
        "avatar_url": (avatar_url or "").strip() or None,
    }
    try:
        user = users.add(email, hash_password(password), metadata)
        ProfileRepository(db).ensure(user.id, metadata)
        commit(db, "auth.register")
    except IntegrityError:
        raise EmailTaken("An account with this email already exists")

    logger.info("registered user %s", user.id)
    return AuthUser.from_user(user), issue_tokens(user.id)


def login(db: Session, email, password) -> tuple[AuthUser, dict]:
    errors = validate_login(email, password)
    if errors:
        raise ValidationError(", ".join(errors), errors=errors)

    user = UserRepository(db).get_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        logger.info("failed login for %s", email)
        raise AuthRequired("Invalid email or password", code="invalid_credentials")
    if not user.is_active:
        raise AuthRequired("Account is disabled", code="account_disabled")
    return AuthUser.from_user(user), issue_tokens(user.id)


def refresh(db: Session, refresh_token: str) -> dict:
    try:
        payload = decode_token(refresh_token, expected_type="refresh")
    except JWTError:
        raise AuthRequired("Invalid refresh token", code="invalid_token")
    user = UserRepository(db).get(payload.get("sub") or "")
    if not user or not user.is_active:
        raise AuthRequired("User not found or inactive", code="invalid_token")
    return issue_tokens(user.id)


def logout(token: str | None, cache: TokenCache | None = None) -> None:
    if token:
        (token_cache if cache is None else cache).evict(token)


def request_password_reset(db: Session, email) -> None:
    """Queue a reset link when the account exists. Silent otherwise."""
    if not email or not isinstance(email, str):
        return
    user = UserRepository(db).get_by_email(email)
    if not user or not user.is_active:
        logger.info("password reset requested for unknown account")
        return
    link = f"{settings.SITE_URL.rstrip('/')}/auth/reset-password?token={create_reset_token(user.id)}"
    email_service.send_password_reset(db, user.email, link, user.id)


def reset_password(db: Session, token, password, password_confirm) -> None:
    if not token:
        raise ValidationError("Reset token is required")
    errors = []
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != password_confirm:
        errors.append("Passwords do not match")
    if errors:
        raise ValidationError(", ".join(errors), errors=errors)

    try:
        payload = decode_token(token, expected_type="reset")
    except JWTError:
        raise ValidationError("Reset link is invalid or has expired", code="invalid_token")

    users = UserRepository(db)
    user = users.get(payload.get("sub") or "")
    if not user:
        raise ValidationError("Reset link is invalid or has expired", code="invalid_token")
    users.set_password_hash(user, hash_password(password))
    commit(db, "auth.reset_password")
    logger.info("password reset for user %s", user.id)


def change_password(db: Session, user_id: str, current_password, new_password, password_confirm) -> None:
    errors = validate_password_change(current_password, new_password, password_confirm)
    if errors:
        raise ValidationError(", ".join(errors), errors=errors)
    users = UserRepository(db)
    user = users.get(user_id)
    if not user or not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    users.set_password_hash(user, hash_password(new_password))
    commit(db, "auth.change_password")


def get_profile(db: Session, user: AuthUser) -> dict:
    profile, created = ProfileRepository(db).ensure(user.id, user.metadata)
    if created:
        commit(db, "profiles.ensure")
    return {**profile.summary(), "email": user.email}


def update_profile(db: Session, user: AuthUser, full_name, phone, bio=None, avatar_url=None) -> dict:
    errors = validate_profile_update(full_name, phone)
    if errors:
        raise ValidationError(", ".join(errors), errors=errors)
    profiles = ProfileRepository(db)
    profile, _ = profiles.ensure(user.id, user.metadata)
    fields = {"full_name": full_name.strip(), "phone": phone.strip(), "bio": (bio or "").strip()}
    if avatar_url is not None:
        fields["avatar_url"] = avatar_url.strip() or None
    profiles.update(profile, **fields)
    commit(db, "profiles.update")
    return {**profile.summary(), "email": user.email}
