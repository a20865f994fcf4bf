"""
User domain service.
- get_or_create_user(user_id)
- get_user(user_id)
- require_user(user_id)

Starter cycles anchor on `created_at`, so it is stamped once on first sight
and never rewritten.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError

from seoteric.core.database import get_db_session, users as app_users
from seoteric.core.errors import NotFoundError
from seoteric.models.user import User


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive timestamps
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        if not row:
            return None
        return User(user_id=row.user_id, created_at=_as_utc(row.created_at))


def require_user(user_id: str) -> User:
    user = get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_or_create_user(user_id: str, created_at: Optional[datetime] = None) -> User:
    existing = get_user(user_id)
    if existing:
        return existing

    now = _as_utc(created_at) or datetime.now(timezone.utc)
    try:
        with get_db_session() as session:
            session.execute(insert(app_users).values(user_id=user_id, created_at=now))
    except IntegrityError:
        # Created concurrently by another request
        return require_user(user_id)

    return User(user_id=user_id, created_at=now)
