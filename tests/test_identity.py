"""
Tests for the identity provider client and its session channel.
"""

import json

import httpx
import pytest

from converter.errors import ConfigurationError, IdentityProviderError
from converter.identity import IdentityProviderClient, SessionEventKind

SIGN_IN_RESPONSE = {
    "localId": "uid-1",
    "email": "user@x.com",
    "idToken": "id-1",
    "refreshToken": "refresh-1",
    "expiresIn": "3600",
}


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class ProviderStub:
    """Records requests and answers like the Firebase Auth REST API."""

    def __init__(self):
        self.requests = []
        self.refused = None

    def __call__(self, request):
        self.requests.append(request)
        if self.refused:
            return httpx.Response(400, json={"error": {"code": 400, "message": self.refused}})
        path = request.url.path
        if path.endswith("accounts:signInWithPassword") or path.endswith("accounts:signInWithIdp"):
            return httpx.Response(200, json=SIGN_IN_RESPONSE)
        if path.endswith("accounts:signUp"):
            return httpx.Response(200, json={"localId": "uid-2", "email": "new@x.com", "idToken": "x"})
        if path.endswith("/token"):
            return httpx.Response(200, json={"id_token": "id-2", "refresh_token": "refresh-2", "expires_in": "3600"})
        return httpx.Response(404)


@pytest.fixture
def stub():
    return ProviderStub()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider(stub, clock):
    return IdentityProviderClient(api_key="web-key", transport=httpx.MockTransport(stub), clock=clock)


class TestSignIn:
    """Email/password and federated sign-in."""

    def test_sign_in(self, provider, stub):
        session = provider.sign_in("user@x.com", "secret")

        assert session.identity.email == "user@x.com"
        assert provider.current == session
        request = stub.requests[0]
        assert request.url.params["key"] == "web-key"
        assert json.loads(request.content) == {
            "email": "user@x.com", "password": "secret", "returnSecureToken": True,
        }

    def test_refused_sign_in(self, provider, stub):
        stub.refused = "INVALID_LOGIN_CREDENTIALS"

        with pytest.raises(IdentityProviderError, match="INVALID_LOGIN_CREDENTIALS"):
            provider.sign_in("user@x.com", "wrong")
        assert provider.current is None

    def test_register_does_not_sign_in(self, provider):
        identity = provider.register("new@x.com", "secret")

        assert identity.email == "new@x.com"
        assert provider.current is None

    def test_sign_in_with_idp(self, provider, stub):
        provider.sign_in_with_idp("google.com", "google-id-token")

        body = json.loads(stub.requests[0].content)
        assert "providerId=google.com" in body["postBody"]
        assert "id_token=google-id-token" in body["postBody"]
        assert provider.current.identity.email == "user@x.com"

    def test_missing_api_key(self, stub):
        provider = IdentityProviderClient(api_key="", transport=httpx.MockTransport(stub))
        provider.api_key = None

        with pytest.raises(ConfigurationError):
            provider.sign_in("user@x.com", "secret")

    def test_sign_out(self, provider):
        provider.sign_in("user@x.com", "secret")
        provider.sign_out()

        assert provider.current is None
        assert provider.get_id_token() is None


class TestIdToken:
    """Short-lived token retrieval."""

    def test_cached_token(self, provider, stub):
        provider.sign_in("user@x.com", "secret")

        assert provider.get_id_token() == "id-1"
        assert len(stub.requests) == 1

    def test_refresh_when_expired(self, provider, stub, clock):
        provider.sign_in("user@x.com", "secret")
        clock.now += 3600

        assert provider.get_id_token() == "id-2"
        refresh = stub.requests[-1]
        assert refresh.url.host == "securetoken.googleapis.com"
        assert b"refresh_token=refresh-1" in refresh.content
        assert provider.current.refresh_token == "refresh-2"

    def test_forced_refresh(self, provider):
        provider.sign_in("user@x.com", "secret")

        assert provider.get_id_token(force_refresh=True) == "id-2"


class TestSessionChannel:
    """Signed-in / signed-out events."""

    def test_subscription_receives_current_state(self, provider):
        subscription = provider.subscribe()

        event = subscription.next_event(timeout=0)
        assert event.kind is SessionEventKind.SIGNED_OUT

    def test_sign_in_and_out_events(self, provider):
        subscription = provider.subscribe()
        subscription.pending()

        provider.sign_in("user@x.com", "secret")
        provider.sign_out()

        events = subscription.pending()
        assert [event.kind for event in events] == [SessionEventKind.SIGNED_IN, SessionEventKind.SIGNED_OUT]
        assert events[0].identity.email == "user@x.com"

    def test_token_refresh_publishes_nothing(self, provider):
        provider.sign_in("user@x.com", "secret")
        subscription = provider.subscribe()
        subscription.pending()

        provider.get_id_token(force_refresh=True)

        assert subscription.pending() == []

    def test_closed_subscription_receives_nothing(self, provider):
        subscription = provider.subscribe()
        subscription.close()

        provider.sign_in("user@x.com", "secret")

        assert subscription.next_event(timeout=0).kind is SessionEventKind.SIGNED_OUT
        assert subscription.next_event(timeout=0) is None

    def test_late_subscriber_sees_signed_in(self, provider):
        provider.sign_in("user@x.com", "secret")

        event = provider.subscribe().next_event(timeout=0)

        assert event.kind is SessionEventKind.SIGNED_IN
        assert event.identity.email == "user@x.com"
