from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_auth
from app.db.session import get_db
from app.services.auth_service import AuthUser
from app.services.booking_service import get_confirmation

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("/{booking_id}")
def booking_confirmation(booking_id: str, user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    return get_confirmation(db, booking_id, user.id)
