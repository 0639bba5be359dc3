"""
Text helpers shared by the context builder and the summarization service.

Token counts here are an approximation: the total character count divided
by ``CHARS_PER_TOKEN``, rounded up. No tokenizer is consulted, so the
estimate drifts for non-English text and code. Callers that size prompts
or decide how many messages to summarize see the heuristic value, not a
real token count.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Tuple

if TYPE_CHECKING:
    from .summarization.schemas import BranchSummary, ProjectSummary

CHARS_PER_TOKEN = 4
BULLET = "•"


def estimate_tokens(*texts: Optional[str]) -> int:
    """Estimate the token count of ``texts`` (None entries count as empty).

    Characters are Unicode code points. Text outside the Basic Multilingual
    Plane (emoji, for example) counts one per character here, where a
    UTF-16 length would count two.
    """
    chars = sum(len(text) for text in texts if text)
    return math.ceil(chars / CHARS_PER_TOKEN)


def serialize_compact(content: Any) -> str:
    """Serialize structured content the way it is counted for estimates."""
    return json.dumps(content, separators=(",", ":"), ensure_ascii=False, default=str)


def serialize_indented(content: Any) -> str:
    """Serialize structured content for display inside a prompt."""
    return json.dumps(content, indent=2, ensure_ascii=False, default=str)


def speaker_label(role: str, user_name: Optional[str] = None) -> str:
    """Label a message author: ``User (name)`` for users, the role otherwise."""
    if role == "USER":
        return f"User ({user_name})" if user_name else "User"
    return role


def format_transcript(entries: Iterable[Tuple[str, Optional[str], str]]) -> str:
    """Render ``(role, user_name, content)`` entries as a role-prefixed transcript."""
    lines = [f"{speaker_label(role, user_name)}: {content}" for role, user_name, content in entries]
    return "\n\n".join(lines)


def _bullets(title: str, items: List[str]) -> List[str]:
    if not items:
        return []
    return ["", f"{title}:", *(f"{BULLET} {item}" for item in items)]


def format_branch_summary(summary: "BranchSummary") -> str:
    """Flatten a structured branch summary into display text."""
    sections = [summary.summary]
    sections += _bullets("Key Decisions", summary.key_decisions)
    sections += _bullets("Open Questions", summary.open_questions)
    sections += _bullets("Next Steps", summary.next_steps)
    return "\n".join(sections)


def format_project_summary(summary: "ProjectSummary") -> str:
    """Flatten a structured project summary into display text."""
    sections = [summary.summary]
    sections += _bullets("Goals", summary.goals)
    if summary.current_focus:
        sections += ["", f"Current Focus: {summary.current_focus}"]
    sections += _bullets("Recent Progress", summary.recent_progress)
    return "\n".join(sections)
