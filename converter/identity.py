"""
Identity provider client.

Talks to the Firebase Auth REST API for sign-in, registration and token
refresh, and publishes session changes to subscribers.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from config.settings import get_settings
from converter.errors import ConfigurationError, IdentityProviderError
from converter.models import VerifiedIdentity

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1"

# Refresh this many seconds before the provider's expiry.
EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class Session:
    """Signed-in state held by the client."""
    identity: VerifiedIdentity
    id_token: str
    refresh_token: str
    expires_at: float


class SessionEventKind(Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class SessionEvent:
    kind: SessionEventKind
    identity: Optional[VerifiedIdentity] = None

    @classmethod
    def signed_in(cls, identity: VerifiedIdentity) -> "SessionEvent":
        return cls(SessionEventKind.SIGNED_IN, identity)

    @classmethod
    def signed_out(cls) -> "SessionEvent":
        return cls(SessionEventKind.SIGNED_OUT)


class Subscription:
    """Channel of session events for one subscriber."""

    def __init__(self, on_close: Callable[["Subscription"], None]):
        self._queue: "queue.Queue[SessionEvent]" = queue.Queue()
        self._on_close = on_close
        self.closed = False

    def publish(self, event: SessionEvent) -> None:
        if not self.closed:
            self._queue.put(event)

    def next_event(self, timeout: Optional[float] = None) -> Optional[SessionEvent]:
        """Next event, or None if ``timeout`` elapses first."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> List[SessionEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._on_close(self)


class IdentityProviderClient:
    """Email/password and federated sign-in against Firebase Auth."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.time,
        identity_url: str = IDENTITY_TOOLKIT_URL,
        secure_token_url: str = SECURE_TOKEN_URL,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.firebase_api_key
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.identity_url = identity_url.rstrip("/")
        self.secure_token_url = secure_token_url.rstrip("/")
        self._transport = transport
        self._clock = clock
        self._session: Optional[Session] = None
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[Session]:
        return self._session

    def subscribe(self) -> Subscription:
        """Open a session channel; it immediately receives the current state."""
        subscription = Subscription(self._unsubscribe)
        with self._lock:
            self._subscribers.append(subscription)
            subscription.publish(self._state_event())
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def _state_event(self) -> SessionEvent:
        if self._session is None:
            return SessionEvent.signed_out()
        return SessionEvent.signed_in(self._session.identity)

    def _set_session(self, session: Optional[Session]) -> None:
        with self._lock:
            changed = (self._session is None) != (session is None) or (
                session is not None and self._session is not None
                and session.identity != self._session.identity
            )
            self._session = session
            if changed:
                event = self._state_event()
                for subscriber in list(self._subscribers):
                    subscriber.publish(event)

    def _post(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("FIREBASE_API_KEY not set. Please configure it in environment or .env")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, params={"key": self.api_key}, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code != 200:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            logger.info("Identity provider refused request: %s", message or response.status_code)
            raise IdentityProviderError(message or f"Identity provider returned {response.status_code}")
        return data

    def _session_from(self, data: Dict[str, Any]) -> Session:
        try:
            return Session(
                identity=VerifiedIdentity(uid=data["localId"], email=data["email"]),
                id_token=data["idToken"],
                refresh_token=data["refreshToken"],
                expires_at=self._clock() + int(data.get("expiresIn", 3600)),
            )
        except KeyError as exc:
            raise IdentityProviderError(f"Identity provider response missing {exc}") from exc

    def sign_in(self, email: str, password: str) -> Session:
        data = self._post(
            f"{self.identity_url}/accounts:signInWithPassword",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        session = self._session_from(data)
        self._set_session(session)
        logger.info("Signed in: email=%s", session.identity.email)
        return session

    def register(self, email: str, password: str) -> VerifiedIdentity:
        """Create an account. The new user still has to sign in."""
        data = self._post(
            f"{self.identity_url}/accounts:signUp",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        return VerifiedIdentity(uid=data.get("localId", ""), email=data.get("email", email))

    def sign_in_with_idp(self, provider_id: str, id_token: str, request_uri: str = "http://localhost") -> Session:
        """Sign in with a credential issued by a third-party provider (e.g. ``google.com``)."""
        data = self._post(
            f"{self.identity_url}/accounts:signInWithIdp",
            json={
                "postBody": urlencode({"id_token": id_token, "providerId": provider_id}),
                "requestUri": request_uri,
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )
        session = self._session_from(data)
        self._set_session(session)
        logger.info("Signed in with %s: email=%s", provider_id, session.identity.email)
        return session

    def sign_out(self) -> None:
        self._set_session(None)

    def get_id_token(self, force_refresh: bool = False) -> Optional[str]:
        """Short-lived token for the current session, refreshed when near expiry."""
        session = self._session
        if session is None:
            return None
        if not force_refresh and self._clock() < session.expires_at - EXPIRY_MARGIN_SECONDS:
            return session.id_token

        data = self._post(
            f"{self.secure_token_url}/token",
            data={"grant_type": "refresh_token", "refresh_token": session.refresh_token},
        )
        try:
            refreshed = Session(
                identity=session.identity,
                id_token=data["id_token"],
                refresh_token=data.get("refresh_token", session.refresh_token),
                expires_at=self._clock() + int(data.get("expires_in", 3600)),
            )
        except KeyError as exc:
            raise IdentityProviderError(f"Identity provider response missing {exc}") from exc
        self._set_session(refreshed)
        return refreshed.id_token
