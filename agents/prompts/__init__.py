"""Role prompts for LLM-backed analysis agents.

Prompts are loaded from .txt template files in this package directory and
rendered via Jinja2.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from models.agents import AgentContext
from models.claim import AgentRole
from models.config import RiskProfile
from models.evidence import describe_evidence

# ---------------------------------------------------------------------------
# Jinja2 environment: templates live next to this __init__.py
# ---------------------------------------------------------------------------

_TEMPLATE_DIR = Path(__file__).resolve().parent
_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    keep_trailing_newline=True,
)


def _load(name: str) -> str:
    """Return the raw text of a template file (no rendering)."""
    return (_TEMPLATE_DIR / name).read_text()


JSON_OUTPUT_INSTRUCTIONS: str = _load("json_output_instructions.txt")

ROLE_SYSTEM_PROMPTS: dict[AgentRole, str] = {
    AgentRole.FUNDAMENTAL: _load("role_fundamental.txt"),
    AgentRole.SENTIMENT: _load("role_sentiment.txt"),
    AgentRole.TECHNICAL: _load("role_technical.txt"),
}

RISK_PROFILE_CONTEXT: dict[RiskProfile, str] = {
    RiskProfile.AVERSE: "Penalize high volatility, prioritize stability/liquidity, prefer HOLD/SELL in bull phases",
    RiskProfile.NEUTRAL: "Balance signals/risks, standard thresholds, moderate position sizing",
    RiskProfile.BOLD: "Higher tolerance for volatility and momentum, aggressive thresholds",
}


def get_risk_profile_context(profile: RiskProfile | str) -> str:
    return RISK_PROFILE_CONTEXT[RiskProfile(profile)]


def build_system_prompt(
    role: AgentRole | str,
    risk_profile: RiskProfile | str,
    override: str | None = None,
) -> str:
    """System prompt for *role*: role brief, risk stance and output contract."""
    role = AgentRole(role)
    profile = RiskProfile(risk_profile)
    tmpl = _env.get_template("system.txt")
    return tmpl.render(
        role_prompt=override or ROLE_SYSTEM_PROMPTS[role],
        risk_profile=profile.value,
        risk_context=RISK_PROFILE_CONTEXT[profile],
        json_output_instructions=JSON_OUTPUT_INSTRUCTIONS,
    )


def build_user_prompt(role: AgentRole | str, context: AgentContext) -> str:
    """User prompt carrying the round's universe, market stats and evidence."""
    role = AgentRole(role)
    evidence = [
        {
            "id": e.id or "-",
            "kind": e.kind,
            "ticker": e.ticker or "-",
            "relevance": e.relevance,
            "label": describe_evidence(e),
        }
        for e in context.evidence
    ]
    tmpl = _env.get_template("user.txt")
    return tmpl.render(
        role=role.value.upper(),
        risk_profile=context.risk_profile.value,
        timestamp=context.timestamp.isoformat(),
        universe=", ".join(context.universe),
        market_stats=context.market_stats,
        evidence=evidence,
    )
