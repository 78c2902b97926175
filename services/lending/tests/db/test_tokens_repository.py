import pytest

from services.lending.src.lending.db.tokens_repository import ApiTokenRepository, hash_token


@pytest.fixture
def tokens(sqlite_engine):
    return ApiTokenRepository(sqlite_engine)


class TestApiTokenRepository:
    def test_issue_and_resolve(self, tokens):
        token = tokens.issue("alice")
        assert tokens.resolve(token) == "alice"

    def test_unknown_token(self, tokens):
        assert tokens.resolve("nope") is None

    def test_tokens_are_unique(self, tokens):
        assert tokens.issue("alice") != tokens.issue("alice")

    def test_revoke(self, tokens):
        token = tokens.issue("alice")
        assert tokens.revoke(token)
        assert tokens.resolve(token) is None
        assert not tokens.revoke("missing")

    def test_hash_is_sha256_hex(self):
        digest = hash_token("secret")
        assert len(digest) == 64
        assert digest == hash_token("secret")
        assert digest != hash_token("Secret")
