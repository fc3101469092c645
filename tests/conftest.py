"""
Pytest configuration and fixtures for the currency converter.

Provides fakes for the token verifier and the history store so the
endpoint layer runs without Firebase.
"""

import itertools

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from config.settings import Settings, get_settings
from converter.errors import InvalidToken
from converter.models import ConversionRecord, VerifiedIdentity

USER = VerifiedIdentity(uid="uid-user", email="user@x.com")
OTHER = VerifiedIdentity(uid="uid-other", email="other@y.com")


class FakeVerifier:
    """Accepts a fixed set of tokens."""

    def __init__(self, tokens):
        self.tokens = dict(tokens)
        self.calls = []

    def verify(self, raw_token):
        self.calls.append(raw_token)
        if raw_token not in self.tokens:
            raise InvalidToken()
        return self.tokens[raw_token]


class InMemoryHistoryStore:
    """History store keeping records in a list, with a strictly increasing clock."""

    def __init__(self, start=1_700_000_000_000):
        self.records = []
        self._clock = itertools.count(start, 1000)

    def append(self, email, entry):
        record = ConversionRecord.from_entry(email, entry, next(self._clock))
        self.records.append(record)
        return record

    def list_by_identity(self, email):
        matching = [record for record in self.records if record.email == email]
        return sorted(matching, key=lambda record: record.timestamp, reverse=True)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def static_dir(tmp_path):
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text("<html>entry</html>")
    (root / "style.css").write_text("body { margin: 0; }")
    return root


@pytest.fixture
def settings(static_dir):
    settings = Settings()
    settings.static_dir = static_dir
    return settings


@pytest.fixture
def verifier():
    return FakeVerifier({"token-user": USER, "token-other": OTHER})


@pytest.fixture
def store():
    return InMemoryHistoryStore()


@pytest.fixture
def client(verifier, store, settings):
    return TestClient(create_app(verifier=verifier, store=store, settings=settings))


@pytest.fixture
def user():
    return USER


@pytest.fixture
def other():
    return OTHER
