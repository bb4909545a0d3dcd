"""Tests for request classifiers and approval policy selection."""

from __future__ import annotations

import pytest

from runpilot.config import ApprovalConfig
from runpilot.constants import (
    DEFAULT_APPROVAL_REASON,
    REQUESTED_APPROVAL_REASON,
    RISKY_ACTION_APPROVAL_REASON,
)
from runpilot.models.enums import OutputFormat
from runpilot.services.policies import (
    DEFAULT_APPROVAL_POLICIES,
    ApprovalContext,
    approval_reason,
    approval_required,
    build_approval_policies,
    is_concise_request,
    is_risky_text,
    is_todo_request,
    matches_risk,
    proposer_declared_policy,
    requested_approval_policy,
    risk_heuristic_policy,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "text",
    [
        "Deploy the release to staging",
        "please SEND the weekly update",
        "delete stale branches",
        "Create calendar event for the retro",
        "merge the open PR",
        "push the hotfix",
    ],
)
def test_risky_verbs_are_detected(text: str) -> None:
    assert is_risky_text(text)


@pytest.mark.parametrize("text", ["Summarize the channel", "Draft release notes", "sender list"])
def test_safe_text_is_not_risky(text: str) -> None:
    assert not is_risky_text(text)


def test_matches_risk_checks_planned_steps() -> None:
    assert matches_risk("Prepare the rollout", ["Collect notes", "Push the branch"])
    assert not matches_risk("Prepare the rollout", ["Collect notes", "Draft summary"])


@pytest.mark.parametrize(
    ("text", "output_format", "expected"),
    [
        ("Summarize the last week in #eng", OutputFormat.BRIEF, True),
        ("give me a quick recap", OutputFormat.CHECKLIST, True),
        ("Summarize the design thread", OutputFormat.PR, False),
        ("Summarize and compare both vendors", OutputFormat.BRIEF, False),
        ("Deep summary of incidents", OutputFormat.BRIEF, False),
        ("Draft the launch email", OutputFormat.BRIEF, False),
    ],
)
def test_concise_request_classification(
    text: str, output_format: OutputFormat, expected: bool
) -> None:
    assert is_concise_request(text, output_format) is expected


def test_concise_request_accepts_format_strings() -> None:
    assert is_concise_request("summary please", "brief")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("List action items from this thread", True),
        ("what are the next steps?", True),
        ("Make a TODO list", True),
        ("Draft the blog post", False),
    ],
)
def test_todo_request_classification(text: str, expected: bool) -> None:
    assert is_todo_request(text) is expected


def test_individual_policies_read_their_own_signal() -> None:
    ctx = ApprovalContext(
        request_text="Write notes",
        steps=("Collect notes", "Draft summary"),
        require_approval=False,
        proposer_declared=True,
    )

    assert not requested_approval_policy(ctx)
    assert not risk_heuristic_policy(ctx)
    assert proposer_declared_policy(ctx)


def test_proposer_declaration_is_ignored_by_default_policies() -> None:
    ctx = ApprovalContext(
        request_text="Write notes",
        steps=("Collect notes", "Draft summary"),
        proposer_declared=True,
    )

    assert not approval_required(ctx, DEFAULT_APPROVAL_POLICIES)


def test_explicit_request_always_gates() -> None:
    ctx = ApprovalContext(request_text="Write notes", steps=(), require_approval=True)
    policies = build_approval_policies(ApprovalConfig(risk_heuristic=False, trust_proposer=False))

    assert policies == (requested_approval_policy,)
    assert approval_required(ctx, policies)


def test_build_approval_policies_honours_config() -> None:
    assert build_approval_policies(ApprovalConfig()) == DEFAULT_APPROVAL_POLICIES
    assert build_approval_policies(ApprovalConfig(risk_heuristic=False, trust_proposer=True)) == (
        requested_approval_policy,
        proposer_declared_policy,
    )


@pytest.mark.parametrize(
    ("context", "proposer_reason", "expected"),
    [
        (ApprovalContext(request_text="Deploy it", steps=()), "Emails customers.", "Emails customers."),
        (
            ApprovalContext(request_text="Deploy it", steps=(), require_approval=True),
            None,
            REQUESTED_APPROVAL_REASON,
        ),
        (ApprovalContext(request_text="Deploy it", steps=()), None, RISKY_ACTION_APPROVAL_REASON),
        (
            ApprovalContext(request_text="Write notes", steps=("Push the branch",)),
            None,
            RISKY_ACTION_APPROVAL_REASON,
        ),
        (
            ApprovalContext(request_text="Write notes", steps=(), proposer_declared=True),
            None,
            DEFAULT_APPROVAL_REASON,
        ),
    ],
)
def test_approval_reason_names_the_trigger(
    context: ApprovalContext, proposer_reason: str | None, expected: str
) -> None:
    assert approval_reason(context, proposer_reason) == expected
