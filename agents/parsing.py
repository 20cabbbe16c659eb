"""Turn agent output (raw LLM text or recorded records) into claims.

Every record yields exactly one outcome: a ``ParsedClaim`` or a
``ClaimParseError``. Missing ``ticker``, ``claim`` or ``confidence`` is an
error; those fields are never filled with defaults and confidence is never
clamped, so out-of-range values reach the verifier unchanged.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from models.agents import ClaimParseError, ClaimParseOutcome, ParsedClaim
from models.claim import AgentRole, Claim
from models.evidence import Evidence

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("ticker", "claim", "confidence")

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


def extract_claim_records(text: str) -> list[Any]:
    """Pull the list of claim records out of a model response.

    Accepts a bare JSON array, a ``{"claims": [...]}`` object, either one
    wrapped in a fenced code block, or either one embedded after free-text
    analysis. Raises ``ValueError`` if no such JSON can be found.
    """
    candidates = [m.group(1) for m in _FENCED_JSON.finditer(text)]
    candidates.append(text)
    for pattern in (_JSON_OBJECT, _JSON_ARRAY):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(0))

    for candidate in candidates:
        try:
            payload = json.loads(candidate.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get("claims"), list):
            return payload["claims"]

    raise ValueError("No JSON claim array found in response")


def parse_claims_response(
    text: str,
    role: AgentRole | str,
    timestamp: datetime,
    known_evidence: Iterable[Evidence] = (),
) -> list[ClaimParseOutcome]:
    """Parse a raw model response into one outcome per claim record."""
    try:
        records = extract_claim_records(text)
    except ValueError as exc:
        return [ClaimParseError(message=str(exc), record=text[:500])]
    return parse_claim_records(records, role, timestamp, known_evidence)


def parse_claim_records(
    records: Sequence[Any],
    role: AgentRole | str,
    timestamp: datetime,
    known_evidence: Iterable[Evidence] = (),
) -> list[ClaimParseOutcome]:
    """Validate *records* as claims made by *role*.

    *timestamp* is used for records that carry no timestamp of their own.
    String evidence entries are resolved by id against *known_evidence*;
    unknown ids are dropped with a warning.
    """
    role = AgentRole(role)
    evidence_by_id = {e.id: e for e in known_evidence if e.id}
    outcomes: list[ClaimParseOutcome] = []

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            outcomes.append(
                ClaimParseError(
                    index=index,
                    message=f"record is a {type(record).__name__}, expected an object",
                    record=record,
                )
            )
            continue

        missing = [f for f in REQUIRED_FIELDS if record.get(f) in (None, "")]
        if missing:
            outcomes.append(
                ClaimParseError(
                    index=index,
                    message=f"missing required field(s): {', '.join(missing)}",
                    record=record,
                )
            )
            continue

        payload = {
            "ticker": record["ticker"],
            "agent_role": role,
            "claim": record["claim"],
            "confidence": record["confidence"],
            "evidence": _resolve_evidence(record.get("evidence") or [], evidence_by_id),
            "timestamp": record.get("timestamp") or timestamp,
            "risk_flags": record.get("riskFlags") or record.get("risk_flags") or [],
        }
        if record.get("id"):
            payload["id"] = str(record["id"])

        try:
            outcomes.append(ParsedClaim(claim=Claim.model_validate(payload)))
        except ValidationError as exc:
            outcomes.append(
                ClaimParseError(
                    index=index,
                    message=f"invalid claim record: {exc.error_count()} validation error(s): "
                    + "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()),
                    record=record,
                )
            )

    return outcomes


def split_outcomes(
    outcomes: Iterable[ClaimParseOutcome],
    role: AgentRole | str,
) -> tuple[list[Claim], list[str]]:
    """Separate parsed claims from errors, logging each error."""
    role = AgentRole(role)
    claims: list[Claim] = []
    errors: list[str] = []
    for outcome in outcomes:
        if isinstance(outcome, ParsedClaim):
            claims.append(outcome.claim)
            continue
        where = f"record {outcome.index}" if outcome.index is not None else "response"
        message = f"{role.value} agent {where}: {outcome.message}"
        logger.warning("Dropped claim: %s", message)
        errors.append(message)
    return claims, errors


def _resolve_evidence(entries: Any, evidence_by_id: dict[str, Evidence]) -> Any:
    if not isinstance(entries, list):
        return entries  # left for Claim validation to reject
    resolved: list[Any] = []
    for entry in entries:
        if isinstance(entry, str):
            found = evidence_by_id.get(entry)
            if found is None:
                logger.warning("Unknown evidence id '%s' referenced by claim; dropping it.", entry)
                continue
            resolved.append(found)
        else:
            resolved.append(entry)
    return resolved
