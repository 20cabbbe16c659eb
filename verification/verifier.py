"""Claim verification against the round cutoff and evidence provenance rules.

Each claim is checked independently and collects zero or more
``RiskViolation``s:

1. Claim timestamp past ``cutoff + clock_skew`` -> warning.
2. Evidence dated after the cutoff -> critical (look-ahead guard, never relaxed).
   Malformed evidence -> critical. Source not allow-listed -> warning.
3. Confidence outside [0, 1] -> critical.
4. Suspicious patterns (very high confidence, many risk flags, very short
   claim text) -> warning.

A claim is accepted iff it has no critical violation. Warnings are kept on
the result for audit and never block.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from models.claim import Claim, RiskViolation, Severity, VerificationResult, ViolationType
from models.config import VerifierConfig
from models.evidence import Evidence, as_utc, describe_evidence
from rounds.errors import ExternalUnavailableError
from rounds.interfaces import EvidenceValidator
from verification.sources import is_allowed_source

logger = logging.getLogger(__name__)

# Collaborator failures that degrade to "no additional violations".
_UNAVAILABLE = (ExternalUnavailableError, ConnectionError, TimeoutError)


class ClaimVerifier:
    """Partitions a claim batch into verified and rejected claims.

    ``verify`` is a pure function of ``(claims, cutoff)`` plus the optional
    fact-store cross-check, so re-verifying the same batch yields the same
    partition.
    """

    def __init__(
        self,
        config: VerifierConfig | None = None,
        fact_store: EvidenceValidator | None = None,
    ) -> None:
        self._config = config or VerifierConfig()
        self._fact_store = fact_store

    @property
    def config(self) -> VerifierConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def verify(self, claims: Sequence[Claim], cutoff: datetime) -> VerificationResult:
        """Verify every claim in *claims* against *cutoff*."""
        cutoff = as_utc(cutoff)
        result = VerificationResult()

        for claim in claims:
            violations = self.check_claim(claim, cutoff)
            result.violations.extend(violations)

            critical = [v for v in violations if v.severity == "critical"]
            if critical:
                result.rejected.append(claim)
                logger.warning(
                    "Rejected claim %s (%s/%s): %s",
                    claim.id,
                    claim.ticker,
                    claim.agent_role.value,
                    "; ".join(v.message for v in critical),
                )
            else:
                result.verified.append(claim)

        logger.info(
            "Verified %d/%d claim(s) at cutoff %s (%d critical, %d warning).",
            len(result.verified),
            len(claims),
            cutoff.isoformat(),
            len(result.critical),
            len(result.warnings),
        )
        return result

    def check_claim(self, claim: Claim, cutoff: datetime) -> list[RiskViolation]:
        """Return every violation raised by *claim*; empty means clean."""
        cfg = self._config
        cutoff = as_utc(cutoff)
        violations: list[RiskViolation] = []

        tolerance = timedelta(seconds=cfg.clock_skew_seconds)
        if claim.timestamp > cutoff + tolerance:
            violations.append(
                _violation(
                    claim,
                    "claim-timestamp",
                    claim.timestamp.timestamp(),
                    cutoff.timestamp(),
                    "warning",
                    f"claim dated {claim.timestamp.isoformat()} is past cutoff "
                    f"{cutoff.isoformat()} beyond {cfg.clock_skew_seconds:g}s tolerance",
                )
            )

        for evidence in claim.evidence:
            violations.extend(self._check_evidence(claim, evidence, cutoff))

        if not 0.0 <= claim.confidence <= 1.0:
            violations.append(
                _violation(
                    claim,
                    "confidence-bound",
                    claim.confidence,
                    1.0,
                    "critical",
                    f"confidence {claim.confidence} outside [0, 1]",
                )
            )

        violations.extend(self._check_suspicious_patterns(claim))
        return violations

    # ------------------------------------------------------------------
    # Supplementary evidence checks
    # ------------------------------------------------------------------

    @staticmethod
    def validate_evidence_relevance(
        evidence: Sequence[Evidence],
        ticker: str,
        min_relevance: float = 0.5,
    ) -> bool:
        """Mean relevance of *ticker*'s evidence must exceed *min_relevance*.

        Returns ``False`` when no evidence is tagged with *ticker*.
        """
        relevant = [e for e in evidence if e.ticker == ticker]
        if not relevant:
            return False
        return sum(e.relevance for e in relevant) / len(relevant) > min_relevance

    @staticmethod
    def check_evidence_freshness(
        evidence: Sequence[Evidence],
        now: datetime | None = None,
        max_age: timedelta = timedelta(hours=24),
    ) -> bool:
        """Every item must be dated and no older than *max_age* at *now*."""
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        for item in evidence:
            ts = item.effective_time
            if ts is None or now - ts > max_age:
                return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_evidence(
        self,
        claim: Claim,
        evidence: Evidence,
        cutoff: datetime,
    ) -> list[RiskViolation]:
        label = describe_evidence(evidence)
        ts = evidence.effective_time

        violations: list[RiskViolation] = []
        if ts is not None and ts > cutoff:
            violations.append(
                _violation(
                    claim,
                    "evidence-lookahead",
                    ts.timestamp(),
                    cutoff.timestamp(),
                    "critical",
                    f"evidence {label} dated {ts.isoformat()} is after cutoff {cutoff.isoformat()}",
                )
            )

        malformed: list[RiskViolation] = []
        if ts is None:
            field = "published_at" if evidence.kind == "news" else "observed_at"
            malformed.append(
                _violation(claim, "evidence-malformed", 0.0, 0.0, "critical",
                           f"{evidence.kind} evidence {label} has no {field}")
            )
        if not 0.0 <= evidence.relevance <= 1.0:
            malformed.append(
                _violation(claim, "evidence-malformed", evidence.relevance, 1.0, "critical",
                           f"evidence {label} relevance {evidence.relevance} outside [0, 1]")
            )
        if not evidence.source.strip():
            malformed.append(
                _violation(claim, "evidence-malformed", 0.0, 0.0, "critical",
                           f"{evidence.kind} evidence has no source")
            )
        if malformed:
            return violations + malformed

        if not violations and self._fact_store is not None and not self._store_confirms(evidence, cutoff):
            violations.append(
                _violation(
                    claim,
                    "evidence-lookahead",
                    ts.timestamp(),
                    cutoff.timestamp(),
                    "critical",
                    f"fact store does not confirm evidence {label} before cutoff",
                )
            )

        if not is_allowed_source(evidence.source, evidence.kind, self._config):
            violations.append(
                _violation(claim, "evidence-source", 0.0, 0.0, "warning",
                           f"{evidence.kind} source '{evidence.source}' is not allow-listed")
            )
        return violations

    def _store_confirms(self, evidence: Evidence, cutoff: datetime) -> bool:
        """Ask the fact store to confirm the time lock.

        An unreachable store contributes no violation.
        """
        try:
            return self._fact_store.validate_evidence(evidence, cutoff)
        except _UNAVAILABLE as exc:
            logger.warning(
                "Fact store unavailable while checking %s; skipping cross-check: %s",
                describe_evidence(evidence),
                exc,
            )
            return True

    def _check_suspicious_patterns(self, claim: Claim) -> list[RiskViolation]:
        cfg = self._config
        violations: list[RiskViolation] = []

        if claim.confidence > cfg.max_confidence:
            violations.append(
                _violation(claim, "excessive-confidence", claim.confidence, cfg.max_confidence,
                           "warning", f"confidence {claim.confidence} above {cfg.max_confidence}")
            )
        if len(claim.risk_flags) > cfg.max_risk_flags:
            violations.append(
                _violation(claim, "risk-flags", len(claim.risk_flags), cfg.max_risk_flags,
                           "warning", f"{len(claim.risk_flags)} risk flags (max {cfg.max_risk_flags})")
            )
        if len(claim.claim) < cfg.min_claim_length:
            violations.append(
                _violation(claim, "claim-length", len(claim.claim), cfg.min_claim_length,
                           "warning", f"claim text shorter than {cfg.min_claim_length} characters")
            )
        return violations


def _violation(
    claim: Claim,
    type_: ViolationType,
    current: float,
    limit: float,
    severity: Severity,
    message: str,
) -> RiskViolation:
    return RiskViolation(
        type=type_,
        current=current,
        limit=limit,
        severity=severity,
        claim_id=claim.id,
        ticker=claim.ticker,
        message=message,
    )
