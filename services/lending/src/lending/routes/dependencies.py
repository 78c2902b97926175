"""Shared route dependencies: database engine and bearer-token authentication."""

from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import Engine

from services.lending.src.lending.db.engine import get_engine
from services.lending.src.lending.db.tokens_repository import ApiTokenRepository
from services.lending.src.lending.domain.errors import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def _shared_engine() -> Engine:
    return get_engine()


def get_db_engine() -> Engine:
    return _shared_engine()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    engine: Engine = Depends(get_db_engine),
) -> str:
    """Resolve the bearer token to a user id."""
    if credentials is None:
        raise AuthenticationError("No authorization header")

    user_id = ApiTokenRepository(engine).resolve(credentials.credentials)
    if user_id is None:
        raise AuthenticationError("Invalid token")
    return user_id
