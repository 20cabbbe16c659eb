"""Evidence models: timestamped, sourced facts that back a claim."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EvidenceKind = Literal["news", "market", "tech"]


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so cutoff comparisons never mix kinds."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Evidence(BaseModel):
    """A single kind-tagged evidence record.

    News items are dated by ``published_at``; market and technical
    observations by ``observed_at``. Either field may be missing in the
    payload, which the verifier reports as malformed evidence rather than
    failing construction.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: EvidenceKind
    source: str
    observed_at: datetime | None = Field(None, alias="observedAt")
    published_at: datetime | None = Field(None, alias="publishedAt")
    relevance: float = 0.0  # 0 to 1, range-checked by the verifier
    id: str | None = None
    ticker: str | None = None
    quote: str | None = None

    @field_validator("observed_at", "published_at")
    @classmethod
    def _normalise_tz(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @property
    def effective_time(self) -> datetime | None:
        """Timestamp that must not exceed the round cutoff."""
        if self.kind == "news":
            return self.published_at or self.observed_at
        return self.observed_at or self.published_at


def describe_evidence(evidence: Evidence) -> str:
    """Short human-readable label for logs and violation messages."""
    if evidence.quote:
        quote = "".join(ch for ch in evidence.quote if ch.isalnum() or ch.isspace()).strip()
        suffix = "..." if len(evidence.quote) > 50 else ""
        return f'{evidence.source}: "{quote[:50]}{suffix}"'

    ts = evidence.effective_time
    if ts is None:
        return f"{evidence.source} (undated)"
    return f"{evidence.source} ({ts.date().isoformat()})"
