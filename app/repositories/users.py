import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.models.user import User
from app.repositories.base import Repository, store_call


class UserRepository(Repository):

    def get(self, user_id: str) -> User | None:
        with store_call(self.db, "users.get"):
            return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        with store_call(self.db, "users.get_by_email"):
            return self.db.execute(
                select(User).where(User.email == email.strip().lower())
            ).scalar_one_or_none()

    def add(self, email: str, password_hash: str, metadata: dict | None = None) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email.strip().lower(),
            password_hash=password_hash,
            user_metadata=dict(metadata or {}),
            is_active=True,
        )
        self.db.add(user)
        # duplicate email surfaces as IntegrityError for the caller to map
        with store_call(self.db, "users.add", passthrough=(IntegrityError,)):
            self.db.flush()
        return user

    def set_password_hash(self, user: User, password_hash: str) -> None:
        user.password_hash = password_hash
        with store_call(self.db, "users.set_password_hash"):
            self.db.flush()
