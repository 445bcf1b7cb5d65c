"""
Shared fixtures: a fresh config, SQLite file and storage directory per test,
and a TestClient running the app lifespan on one event loop.
"""
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from omnichat.config import Config, set_config


def make_config(root: Path) -> Config:
    cfg = Config()
    cfg.app.env = "test"
    cfg.app.log_level = "WARNING"
    cfg.app.mock_auth = True
    cfg.auth.jwt_secret = "test-secret-key-for-omnichat-0123456789abcdef"
    cfg.database.url = f"sqlite+aiosqlite:///{root / 'omnichat-test.db'}"
    cfg.gateway.api_key = "test-key"
    cfg.gateway.base_url = "https://gateway.test/v1"
    cfg.storage.root_dir = str(root / "storage")
    cfg.storage.public_base_url = "http://testserver/storage"
    cfg.storage.max_upload_bytes = 1024
    cfg.rate_limits.enabled = False
    return cfg


# The route modules build their limiter at import time
set_config(make_config(Path(tempfile.gettempdir())))

_SINGLETONS = [
    ("omnichat.services.database", "_engine"),
    ("omnichat.services.database", "_session_factory"),
    ("omnichat.services.store", "_store"),
    ("omnichat.services.storage", "_storage"),
    ("omnichat.services.llm_client", "_client"),
    ("omnichat.services.image_client", "_client"),
    ("omnichat.services.auth_service", "_auth_service"),
    ("omnichat.services.conversation_service", "_service"),
    ("omnichat.services.file_service", "_service"),
    ("omnichat.services.image_service", "_service"),
    ("omnichat.services.capability_service", "_service"),
]


@pytest.fixture(autouse=True)
def app_config(tmp_path, monkeypatch) -> Config:
    """Install a per-test config and drop cached service instances."""
    import importlib

    cfg = set_config(make_config(tmp_path))
    for module_name, attr in _SINGLETONS:
        monkeypatch.setattr(importlib.import_module(module_name), attr, None)
    return cfg


@pytest.fixture()
def client(app_config):
    from omnichat.app import create_app

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def other_headers(client) -> dict:
    """Bearer headers for a second, non-demo user."""
    from omnichat.services.auth_service import get_auth_service

    auth = get_auth_service()
    user = client.portal.call(auth.upsert_user, "other-user-456", "Other User")
    return {"Authorization": f"Bearer {auth.create_access_token(user)}"}


@pytest.fixture()
def conversation(client) -> dict:
    """A conversation owned by the demo user."""
    response = client.post("/api/conversations", json={"title": "Test chat"})
    assert response.status_code == 201
    return response.json()


@pytest.fixture()
def count_rows(client):
    """Count rows of a model matching keyword filters, on the app's loop."""
    from omnichat.services.database import get_session

    async def _count(model, **filters):
        async with get_session() as session:
            stmt = select(func.count()).select_from(model).filter_by(**filters)
            return (await session.execute(stmt)).scalar()

    def count(model, **filters) -> int:
        return client.portal.call(lambda: _count(model, **filters))

    return count
