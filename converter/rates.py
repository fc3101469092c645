from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import get_settings
from converter.errors import UpstreamUnavailable


logger = logging.getLogger(__name__)

UNKNOWN_FLAG = "🌐"
REGIONAL_INDICATOR_OFFSET = 127397

# Currencies whose code does not start with an ISO 3166 country code.
FLAG_OVERRIDES: Dict[str, Optional[str]] = {
    "EUR": "EU",
    "ANG": "CW",
    "XAF": None,
    "XOF": None,
    "XCD": None,
    "XDR": None,
    "XAU": None,
    "XAG": None,
}


def flag_for(currency_code: str) -> str:
    code = (currency_code or "").strip().upper()
    country = FLAG_OVERRIDES.get(code, code[:2] if len(code) == 3 else None)
    if not country or not country.isalpha() or not country.isascii():
        return UNKNOWN_FLAG
    return "".join(chr(ord(char) + REGIONAL_INDICATOR_OFFSET) for char in country)


class RateLookupClient:
    """Read-only client for a Frankfurter-compatible exchange rate API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.rates_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self._transport = transport

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            with httpx.Client(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = client.get(path, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            logger.warning("Rate lookup %s failed: %s", path, exc)
            raise UpstreamUnavailable(f"Rate lookup failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable("Rate lookup returned malformed JSON") from exc

    def currencies(self) -> Dict[str, str]:
        """Map of currency code to display name."""
        data = self._get("/currencies")
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Rate lookup returned an unexpected currency list")
        return {str(code): str(name) for code, name in data.items()}

    def latest(self, amount: float, from_currency: str, to_currency: str) -> Dict[str, float]:
        """Map of currency code to ``amount`` expressed in that currency."""
        data = self._get(
            "/latest",
            params={"amount": amount, "from": from_currency, "to": to_currency},
        )
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise UpstreamUnavailable("Rate lookup response has no rates")
        try:
            return {str(code): float(value) for code, value in rates.items()}
        except (TypeError, ValueError) as exc:
            raise UpstreamUnavailable("Rate lookup returned a non-numeric rate") from exc

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            return float(amount)
        rates = self.latest(amount, from_currency, to_currency)
        if to_currency not in rates:
            raise UpstreamUnavailable(f"No rate returned for {to_currency}")
        return rates[to_currency]
