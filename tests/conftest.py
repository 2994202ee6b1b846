from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import UserSession
from backend.sql import SqlBackend
from db.session import init_db


@pytest.fixture()
def backend(tmp_path: Path) -> SqlBackend:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield SqlBackend(factory, storage_root=tmp_path / "storage")
    engine.dispose()


@pytest.fixture()
def user(backend: SqlBackend) -> UserSession:
    backend.insert(
        "users",
        {
            "id": "user-1",
            "email": "ana@example.com",
            "tier": "basic",
            "openai_key": "sk-test",
            "heygen_key": "hg-test",
        },
    )
    backend.insert("user_usage", {"user_id": "user-1"})
    return UserSession(
        user_id="user-1",
        email="ana@example.com",
        access_token="token-1",
        openai_api_key="sk-test",
        heygen_api_key="hg-test",
    )

