from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from portal.db.session import get_db
from portal.embed.resolver import EmbedResolver
from portal.main import create_app
from portal.security.config import load_security_config

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "security_config.yaml"


@pytest.fixture
def client(session_factory):
    """
    App wired to the per-test database. The lifespan is not run, so state
    that startup would set is filled in here.
    """

    app = create_app()
    app.state.security_config = load_security_config(CONFIG_PATH)
    app.state.embed_resolver = EmbedResolver()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def auth():
    """Dummy bearer auth: the token is the user id."""

    def headers(user) -> dict[str, str]:
        return {"Authorization": f"Bearer {user.id}"}

    return headers
