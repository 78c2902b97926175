import pytest
from fastapi.testclient import TestClient

from services.lending.src.lending.db.tokens_repository import ApiTokenRepository
from services.lending.src.lending.main import app
from services.lending.src.lending.routes.dependencies import get_db_engine


@pytest.fixture
def client(sqlite_engine):
    app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(sqlite_engine):
    """Bearer headers for a freshly issued token, by user id."""
    tokens = ApiTokenRepository(sqlite_engine)

    def _headers(user_id: str = "alice") -> dict[str, str]:
        return {"Authorization": f"Bearer {tokens.issue(user_id)}"}

    return _headers
