"""Tests for the shared text helpers."""

from branchwork.formatting import (
    estimate_tokens,
    format_branch_summary,
    format_project_summary,
    format_transcript,
    serialize_compact,
    speaker_label,
)
from branchwork.summarization.schemas import BranchSummary, ProjectSummary


def test_estimate_tokens_rounds_up_and_ignores_none():
    assert estimate_tokens() == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("ab", None, "cd", "") == 1


def test_estimate_tokens_counts_code_points():
    assert estimate_tokens("\U0001F680\U0001F680\U0001F680\U0001F680") == 1


def test_serialize_compact_has_no_whitespace():
    assert serialize_compact({"a": [1, 2], "b": "x"}) == '{"a":[1,2],"b":"x"}'


def test_speaker_label():
    assert speaker_label("USER", "Ada") == "User (Ada)"
    assert speaker_label("USER") == "User"
    assert speaker_label("ASSISTANT", "Ada") == "ASSISTANT"


def test_format_transcript():
    text = format_transcript([("USER", "Ada", "hi"), ("ASSISTANT", None, "hello")])
    assert text == "User (Ada): hi\n\nASSISTANT: hello"


def test_format_branch_summary_omits_empty_sections():
    summary = BranchSummary(
        summary="We picked a queue.",
        key_decisions=["Use SQS"],
        next_steps=["Prototype consumer", "Load test"],
    )

    assert format_branch_summary(summary) == (
        "We picked a queue.\n"
        "\n"
        "Key Decisions:\n"
        "• Use SQS\n"
        "\n"
        "Next Steps:\n"
        "• Prototype consumer\n"
        "• Load test"
    )


def test_format_project_summary():
    summary = ProjectSummary(
        summary="Payments platform.",
        goals=["PCI compliance"],
        current_focus="Card vaulting",
    )

    text = format_project_summary(summary)

    assert text.splitlines() == [
        "Payments platform.",
        "",
        "Goals:",
        "• PCI compliance",
        "",
        "Current Focus: Card vaulting",
    ]
    assert format_project_summary(ProjectSummary(summary="Bare")) == "Bare"
