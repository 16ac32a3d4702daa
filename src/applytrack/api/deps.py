from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from applytrack.config import get_settings
from applytrack.db.models import User
from applytrack.db.repositories import Repository
from applytrack.db.seed import seed_demo_user
from applytrack.db.session import get_db_session

AUTH_REQUIRED = "Authentication required"


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def extract_token(authorization: str | None) -> str:
    if not authorization:
        return ""
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return value.strip()


def resolve_user(db: Session, token: str) -> User | None:
    if get_settings().api_auth_mode == "open":
        return seed_demo_user(db)
    return Repository(db).get_user_by_token(token)


def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    user = resolve_user(db, extract_token(authorization))
    if user is None:
        raise HTTPException(status_code=401, detail=AUTH_REQUIRED)
    return user
