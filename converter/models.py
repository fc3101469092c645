"""
Data models for the conversion history.

Defines the request schema and the immutable stored record.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat


class VerifiedIdentity(BaseModel):
    """Identity resolved from a verified token."""

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str


class HistoryEntry(BaseModel):
    """Conversion fields supplied by the client on save.

    Anything else in the body (token, a spoofed email) is ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_currency: str = Field(..., alias="from", min_length=1, description="Source currency code")
    to_currency: str = Field(..., alias="to", min_length=1, description="Destination currency code")
    amount: FiniteFloat = Field(..., description="Input quantity")
    rate: FiniteFloat = Field(..., description="Value returned by the rate lookup")
    result: FiniteFloat = Field(..., description="Converted quantity")


class ConversionRecord(BaseModel):
    """Immutable history record as persisted.

    ``email`` always comes from the verified token, ``timestamp`` is
    milliseconds since epoch assigned at write time.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    email: str
    from_currency: str = Field(..., alias="from")
    to_currency: str = Field(..., alias="to")
    amount: FiniteFloat
    rate: FiniteFloat
    result: FiniteFloat
    timestamp: int

    @classmethod
    def from_entry(cls, email: str, entry: HistoryEntry, timestamp: int) -> "ConversionRecord":
        return cls(
            email=email,
            from_currency=entry.from_currency,
            to_currency=entry.to_currency,
            amount=entry.amount,
            rate=entry.rate,
            result=entry.result,
            timestamp=timestamp,
        )

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ConversionRecord":
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
