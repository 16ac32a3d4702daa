from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from applytrack.config import get_settings
from applytrack.db.models import User
from applytrack.db.repositories import Repository

logger = logging.getLogger(__name__)


def seed_demo_user(session: Session) -> User:
    """Ensure the user that open-mode requests are attributed to exists."""
    settings = get_settings()
    repo = Repository(session)
    existing = repo.get_user_by_email(settings.demo_user_email)
    if existing:
        return existing

    user = repo.create_user(email=settings.demo_user_email, name="Demo User")
    logger.info("Seeded demo user id=%s email=%s", user.id, user.email)
    return user
