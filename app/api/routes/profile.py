from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_auth
from app.db.session import get_db
from app.schemas.profile import PasswordChange, ProfileOut, ProfileUpdate
from app.services import auth_service
from app.services.auth_service import AuthUser

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileOut)
def get_profile(user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    return auth_service.get_profile(db, user)


@router.post("/update", response_model=ProfileOut)
def update_profile(body: ProfileUpdate, user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    return auth_service.update_profile(db, user, body.full_name, body.phone, bio=body.bio, avatar_url=body.avatar_url)


@router.post("/change-password")
def change_password(body: PasswordChange, user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    auth_service.change_password(db, user.id, body.current_password, body.new_password, body.password_confirm)
    return {"ok": True, "message": "Password updated"}
