"""Per-kind evidence source allow-lists."""

from __future__ import annotations

from models.config import VerifierConfig


def is_allowed_source(source: str, kind: str, config: VerifierConfig) -> bool:
    """Return ``True`` if *source* matches an allow-listed entry for *kind*.

    Matching is a case-insensitive substring test, so ``www.reuters.com``
    and ``Binance Spot`` match ``reuters.com`` and ``binance``.
    """
    lowered = source.lower()
    return any(entry.lower() in lowered for entry in config.sources_for(kind))
