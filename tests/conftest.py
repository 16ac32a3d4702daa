from __future__ import annotations

import os
from pathlib import Path
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test_applytrack.db")
os.environ.setdefault("LOCAL_STORE_PATH", "./data/test_local_store.json")
os.environ.setdefault("API_AUTH_MODE", "token")
Path("data").mkdir(exist_ok=True)

import pytest  # noqa: E402

from applytrack.db import models  # noqa: E402,F401
from applytrack.db.base import Base  # noqa: E402
from applytrack.db.repositories import Repository  # noqa: E402
from applytrack.db.session import SessionLocal, engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


def make_user(email: str, name: str = "") -> SimpleNamespace:
    with SessionLocal() as db:
        user = Repository(db).create_user(email=email, name=name)
        return SimpleNamespace(id=user.id, email=user.email, token=user.api_token)


@pytest.fixture
def user() -> SimpleNamespace:
    return make_user("ada@example.com", "Ada")


@pytest.fixture
def other_user() -> SimpleNamespace:
    return make_user("grace@example.com", "Grace")
