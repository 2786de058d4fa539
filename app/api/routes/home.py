from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import optional_auth
from app.db.session import get_db
from app.services.auth_service import AuthUser
from app.services.trip_service import home_feed

router = APIRouter(tags=["home"])


@router.get("/")
def home(user: AuthUser | None = Depends(optional_auth), db: Session = Depends(get_db)):
    """Featured trips with free seats, plus the caller's stats when signed in."""
    feed = home_feed(db, user.id if user else None)
    feed["user"] = user.to_dict() if user else None
    return feed
