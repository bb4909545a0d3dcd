"""Pure text classifiers and pluggable approval policies."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from runpilot.constants import (
    DEFAULT_APPROVAL_REASON,
    REQUESTED_APPROVAL_REASON,
    RISKY_ACTION_APPROVAL_REASON,
    RISKY_VERBS,
)
from runpilot.models.enums import OutputFormat

if TYPE_CHECKING:
    from runpilot.config import ApprovalConfig

_RISKY_VERB_RE = re.compile(
    r"\b(" + "|".join(re.escape(verb) for verb in RISKY_VERBS) + r")\b",
    re.IGNORECASE,
)
_SUMMARY_INTENT_RE = re.compile(r"\b(summarize|summarise|summary|recap|brief|tl;dr|digest)\b")
_COMPLEX_INTENT_RE = re.compile(r"\b(compare|deep|analy[sz]e|investigate|multi-step|plan)\b")
_TODO_INTENT_RE = re.compile(r"\b(to-?do|todo|action items?|tasks?|next steps?)\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------


def is_risky_text(text: str) -> bool:
    """Return whether text mentions an action with external side effects."""
    return _RISKY_VERB_RE.search(text) is not None


def matches_risk(request_text: str, steps: Sequence[str]) -> bool:
    """Return whether the request or any planned step is risky."""
    return is_risky_text(request_text) or any(is_risky_text(step) for step in steps)


def is_concise_request(text: str, output_format: OutputFormat | str) -> bool:
    """Return whether a request is a plain summarization that runs in concise mode."""
    if OutputFormat(output_format) is OutputFormat.PR:
        return False
    normalized = text.lower().strip()
    summary_intent = (
        _SUMMARY_INTENT_RE.search(normalized) is not None
        or normalized.startswith("summarize")
        or normalized.startswith("summary")
    )
    complex_intent = _COMPLEX_INTENT_RE.search(normalized) is not None
    return summary_intent and not complex_intent


def is_todo_request(text: str) -> bool:
    """Return whether the request asks for a to-do or action-item list."""
    return _TODO_INTENT_RE.search(text) is not None


# ---------------------------------------------------------------------------
# Approval policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ApprovalContext:
    """Inputs every approval policy may look at."""

    request_text: str
    steps: tuple[str, ...]
    require_approval: bool = False
    proposer_declared: bool = False


type ApprovalPolicy = Callable[[ApprovalContext], bool]


def requested_approval_policy(context: ApprovalContext) -> bool:
    """Gate when the command explicitly asked for approval."""
    return context.require_approval


def risk_heuristic_policy(context: ApprovalContext) -> bool:
    """Gate when the request or a step mentions a risky verb."""
    return matches_risk(context.request_text, context.steps)


def proposer_declared_policy(context: ApprovalContext) -> bool:
    """Gate when the plan proposer itself flagged the plan."""
    return context.proposer_declared


DEFAULT_APPROVAL_POLICIES: tuple[ApprovalPolicy, ...] = (
    requested_approval_policy,
    risk_heuristic_policy,
)


def approval_required(context: ApprovalContext, policies: Sequence[ApprovalPolicy]) -> bool:
    return any(policy(context) for policy in policies)


def approval_reason(context: ApprovalContext, proposer_reason: str | None = None) -> str:
    """Explain why a run was gated, preferring the proposer's own wording."""
    if proposer_reason:
        return proposer_reason
    if context.require_approval:
        return REQUESTED_APPROVAL_REASON
    if matches_risk(context.request_text, context.steps):
        return RISKY_ACTION_APPROVAL_REASON
    return DEFAULT_APPROVAL_REASON


def build_approval_policies(config: ApprovalConfig) -> tuple[ApprovalPolicy, ...]:
    """Select approval policies from configuration; the explicit request flag always applies."""
    policies: list[ApprovalPolicy] = [requested_approval_policy]
    if config.risk_heuristic:
        policies.append(risk_heuristic_policy)
    if config.trust_proposer:
        policies.append(proposer_declared_policy)
    return tuple(policies)


__all__ = [
    "DEFAULT_APPROVAL_POLICIES",
    "ApprovalContext",
    "ApprovalPolicy",
    "approval_reason",
    "approval_required",
    "build_approval_policies",
    "is_concise_request",
    "is_risky_text",
    "is_todo_request",
    "matches_risk",
    "proposer_declared_policy",
    "requested_approval_policy",
    "risk_heuristic_policy",
]
