import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.models.profile import Profile
from app.repositories.base import Repository, store_call

logger = logging.getLogger(__name__)


class ProfileRepository(Repository):

    def get(self, profile_id: str) -> Profile | None:
        with store_call(self.db, "profiles.get"):
            return self.db.get(Profile, profile_id)

    def get_many(self, ids) -> dict[str, Profile]:
        ids = {i for i in ids if i}
        if not ids:
            return {}
        with store_call(self.db, "profiles.get_many"):
            rows = self.db.execute(select(Profile).where(Profile.id.in_(ids))).scalars().all()
        return {p.id: p for p in rows}

    def ensure(self, user_id: str, metadata: dict | None = None) -> tuple[Profile, bool]:
        """Return (profile, created). Creates the row from identity metadata if missing.

        Losing a concurrent insert race is not an error: the other writer's row is returned.
        """
        existing = self.get(user_id)
        if existing:
            return existing, False

        meta = metadata or {}
        profile = Profile(
            id=user_id,
            full_name=meta.get("full_name") or "User",
            phone=meta.get("phone") or "",
            bio=meta.get("bio") or "",
            avatar_url=meta.get("avatar_url") or None,
        )
        try:
            self.db.add(profile)
            with store_call(self.db, "profiles.ensure", passthrough=(IntegrityError,)):
                self.db.flush()
        except IntegrityError:
            logger.info("profile %s created concurrently, reusing it", user_id)
            return self.get(user_id), False
        return profile, True

    def update(self, profile: Profile, **fields) -> Profile:
        for key, value in fields.items():
            setattr(profile, key, value)
        with store_call(self.db, "profiles.update"):
            self.db.flush()
        return profile
