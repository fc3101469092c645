"""
HTTP client for the converter API.

Wraps the authentication round-trip and the history routes.
"""

from typing import Any, Dict, List, Optional

import httpx

from config.settings import get_settings
from converter.errors import ApiError
from converter.models import ConversionRecord, HistoryEntry


class HistoryApiClient:
    """Client for the ``/auth`` and ``/api/*-history`` routes."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            with httpx.Client(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(503, f"Converter API unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code != 200:
            message = body.get("error") if isinstance(body, dict) else None
            raise ApiError(response.status_code, message, body)
        if not isinstance(body, dict):
            raise ApiError(response.status_code, "Converter API returned malformed JSON")
        return body

    def confirm(self, token: str) -> str:
        """Sign-in confirmation round-trip."""
        return self._request("POST", "/auth", json={"token": token}).get("message", "")

    def save(self, token: str, entry: HistoryEntry) -> str:
        payload = {"token": token}
        payload.update(entry.model_dump(by_alias=True))
        return self._request("POST", "/api/save-history", json=payload).get("message", "")

    def history(self, token: str) -> List[ConversionRecord]:
        body = self._request("GET", "/api/get-history", headers={"Authorization": token})
        return [ConversionRecord.from_document(item) for item in body.get("history") or []]
