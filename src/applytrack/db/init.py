from __future__ import annotations

from pathlib import Path

from applytrack.config import get_settings
from applytrack.db.base import Base
from applytrack.db.session import SessionLocal, engine
from applytrack.db import models  # noqa: F401
from applytrack.db.seed import seed_demo_user


def ensure_data_directories() -> None:
    settings = get_settings()
    paths: list[Path] = [
        settings.data_dir,
        settings.local_store_path.parent,
    ]
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, int]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as session:
        demo_user = seed_demo_user(session)
    return {"demo_user_id": demo_user.id}
