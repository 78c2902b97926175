"""Bearer token storage. Only the sha256 digest of a token is persisted."""

import hashlib
import secrets

from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from services.lending.src.lending.db.models import api_tokens
from services.lending.src.lending.utils.timestamps import utc_now


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ApiTokenRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def issue(self, user_id: str) -> str:
        """Create a new token for `user_id` and return it (shown once)."""
        token = secrets.token_urlsafe(32)
        with self.engine.begin() as conn:
            conn.execute(
                api_tokens.insert().values(
                    token_hash=hash_token(token),
                    user_id=user_id,
                    revoked=False,
                    created_at=utc_now(),
                )
            )
        return token

    def resolve(self, token: str) -> str | None:
        """Return the user id for an active token, or None."""
        stmt = (
            select(api_tokens.c.user_id)
            .where(api_tokens.c.token_hash == hash_token(token))
            .where(api_tokens.c.revoked.is_(False))
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar()

    def revoke(self, token: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(api_tokens)
                .where(api_tokens.c.token_hash == hash_token(token))
                .values(revoked=True)
            )
            return result.rowcount == 1
