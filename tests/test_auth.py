import pytest
from jose import JWTError

from app.core.errors import AuthRequired, EmailTaken, ValidationError
from app.core.security import create_access_token, create_refresh_token, create_reset_token, decode_token
from app.models.profile import Profile
from app.repositories.users import UserRepository
from app.services import auth_service
from app.services.auth_service import TokenCache, resolve_user


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def register(db, email="new@example.com", password="secret123"):
    return auth_service.register(db, email, password, password, "New Person", "555 123 4567", bio="hi")


def test_register_creates_user_and_profile(db):
    user, tokens = register(db)
    assert user.email == "new@example.com"
    assert decode_token(tokens["access_token"], "access")["sub"] == user.id
    profile = db.get(Profile, user.id)
    assert profile.full_name == "New Person"
    assert profile.bio == "hi"


def test_register_rejects_duplicate_email(db):
    register(db)
    with pytest.raises(EmailTaken):
        register(db, email="NEW@example.com")


def test_register_validation(db):
    with pytest.raises(ValidationError) as exc:
        auth_service.register(db, "bad", "1", "2", "", "")
    assert len(exc.value.errors) == 5


def test_login(db, make_user):
    user = make_user(email="rider@example.com", password="secret123")
    logged_in, tokens = auth_service.login(db, "rider@example.com", "secret123")
    assert logged_in.id == user.id
    with pytest.raises(AuthRequired) as exc:
        auth_service.login(db, "rider@example.com", "wrong-password")
    assert exc.value.code == "invalid_credentials"


def test_token_types_are_not_interchangeable(make_user):
    user = make_user()
    with pytest.raises(JWTError):
        decode_token(create_refresh_token(user.id), "access")
    with pytest.raises(JWTError):
        decode_token(create_access_token(user.id), "reset")


def test_resolve_user(db, make_user):
    user = make_user()
    cache = TokenCache(0)
    assert resolve_user(db, create_access_token(user.id), cache).id == user.id
    assert resolve_user(db, "garbage", cache) is None
    assert resolve_user(db, None, cache) is None
    assert resolve_user(db, create_refresh_token(user.id), cache) is None


def test_deactivated_account_rejected_after_cache_expiry(db, make_user):
    user = make_user()
    token = create_access_token(user.id)
    clock = Clock()
    cache = TokenCache(30, clock=clock)
    assert resolve_user(db, token, cache) is not None

    record = UserRepository(db).get(user.id)
    record.is_active = False
    db.commit()

    clock.now += 10
    assert resolve_user(db, token, cache) is not None
    clock.now += 30
    assert resolve_user(db, token, cache) is None


def test_logout_evicts_cached_token(db, make_user):
    user = make_user()
    token = create_access_token(user.id)
    cache = TokenCache(30)
    resolve_user(db, token, cache)
    assert cache.get(token) is not None
    auth_service.logout(token, cache)
    assert cache.get(token) is None


def test_token_cache_sweeps_expired_entries(make_user):
    user = make_user()
    clock = Clock()
    cache = TokenCache(30, clock=clock)
    for i in range(1000):
        cache.put(f"token-{i}", user)
        clock.now += 1
    # never more than two ttl windows of entries survive
    assert len(cache._entries) <= 60
    assert cache.get("token-999") is user
    assert cache.get("token-0") is None


def test_token_cache_is_bounded(make_user):
    user = make_user()
    cache = TokenCache(30, clock=Clock(), max_entries=3)
    for i in range(5):
        cache.put(f"token-{i}", user)
    assert list(cache._entries) == ["token-2", "token-3", "token-4"]


def test_refresh(db, make_user):
    user = make_user()
    tokens = auth_service.refresh(db, create_refresh_token(user.id))
    assert decode_token(tokens["access_token"], "access")["sub"] == user.id
    with pytest.raises(AuthRequired):
        auth_service.refresh(db, create_access_token(user.id))


def test_password_reset_flow(db, make_user, outbox):
    make_user(email="forgetful@example.com", password="oldpass1")
    auth_service.request_password_reset(db, "forgetful@example.com")

    assert len(outbox) == 1
    assert outbox[0]["to"] == "forgetful@example.com"
    link = next(line for line in outbox[0]["body"].splitlines() if "reset-password?token=" in line)
    token = link.split("token=", 1)[1]

    auth_service.reset_password(db, token, "newpass1", "newpass1")
    auth_service.login(db, "forgetful@example.com", "newpass1")
    with pytest.raises(AuthRequired):
        auth_service.login(db, "forgetful@example.com", "oldpass1")


def test_password_reset_unknown_email_is_silent(db, outbox):
    auth_service.request_password_reset(db, "nobody@example.com")
    assert outbox == []


def test_reset_password_rejects_bad_tokens(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        auth_service.reset_password(db, create_access_token(user.id), "newpass1", "newpass1")
    with pytest.raises(ValidationError):
        auth_service.reset_password(db, create_reset_token(user.id), "short", "short")


def test_change_password(db, make_user):
    user = make_user(email="changer@example.com", password="oldpass1")
    with pytest.raises(ValidationError):
        auth_service.change_password(db, user.id, "wrong", "newpass1", "newpass1")
    auth_service.change_password(db, user.id, "oldpass1", "newpass1", "newpass1")
    auth_service.login(db, "changer@example.com", "newpass1")


def test_update_profile(db, make_user):
    user = make_user(with_profile=False)
    out = auth_service.update_profile(db, user, " Renamed ", "555 987 6543", bio="Driver since 2019")
    assert out["full_name"] == "Renamed"
    assert out["bio"] == "Driver since 2019"
    with pytest.raises(ValidationError):
        auth_service.update_profile(db, user, "R", "12")
