"""
Deterministic narrative transformer.

Rule-based generation used when the hosted model is unavailable. Follows
the same Golden Formula (ActionVerb + SpecificTask + Context/Reason) as the
model prompt, with fixed lexical substitution instead of rewriting.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .lexicon import Lexicon, get_lexicon


_WHITESPACE_RE = re.compile(r"\s+")
_NUMBERED_LIST_RE = re.compile(r"^\d+\.")

# Checked in order; the first separator producing a multi-part split wins
BLOCK_BILLING_SEPARATORS = (" and ", " also ", " then ", ", and ", "; ")

FORBIDDEN_STARTS = ("client", "meeting", "call", "the client")

ACTION_VERBS = (
    "analyzed", "reviewed", "drafted", "prepared", "conducted",
    "telephone", "correspondence", "researched", "examined",
    "structured", "configured", "advised", "conferred", "strategized",
)

MIN_OUTPUT_LENGTH = 20


@dataclass(frozen=True)
class OutputValidation:
    """Quality check result for a generated narrative."""
    valid: bool
    issues: List[str] = field(default_factory=list)


def apply_deterministic_rules(
    activity: str,
    subject: str,
    goal: str,
    lexicon: Optional[Lexicon] = None
) -> str:
    """Build a basic compliant narrative without the hosted model.

    Args:
        activity: Activity id (e.g. "call", "drafting")
        subject: Who or what the work concerned
        goal: Purpose of the work
        lexicon: Lexicon to use; the packaged one by default

    Returns:
        Narrative starting with the activity's verb phrase and ending with
        a single period
    """
    lexicon = lexicon or get_lexicon()

    verb = lexicon.verb_for(activity)
    clean_subject = clean_text(subject)
    clean_goal = clean_text(goal)
    enhanced_goal = enhance_with_vocabulary(clean_goal, lexicon)

    return construct_narrative(verb, clean_subject, enhanced_goal)


def clean_text(text: str) -> str:
    """Trim, collapse whitespace runs and capitalize the first letter."""
    cleaned = _WHITESPACE_RE.sub(" ", text.strip())
    return cleaned[:1].upper() + cleaned[1:]


def enhance_with_vocabulary(text: str, lexicon: Optional[Lexicon] = None) -> str:
    """Replace generic terms with their canonical professional alternative.

    The text is lowercased first. Rules run in lexicon order, each scanning
    the output of the previous one, and only match whole words.
    """
    lexicon = lexicon or get_lexicon()
    enhanced = text.lower()

    for generic in lexicon.vocabulary:
        pattern = _whole_word(generic)
        if pattern.search(enhanced):
            replacement = lexicon.canonical_term(generic).lower()
            enhanced = pattern.sub(lambda _: replacement, enhanced)

    return enhanced


def construct_narrative(verb: str, subject: str, goal: str) -> str:
    """Assemble verb, subject and goal into a single sentence."""
    verb_lower = verb.lower()
    connector = "regarding"
    if "conference" in verb_lower or "call" in verb_lower:
        connector = "with"
    elif "draft" in verb_lower or "prepar" in verb_lower:
        connector = "for"

    # "with" is not rendered; conference verbs read "<verb> <subject> regarding <goal>"
    if connector == "for":
        narrative = f"{verb} {subject} to {goal}"
    else:
        narrative = f"{verb} {subject} regarding {goal}"

    narrative = narrative[:1].upper() + narrative[1:]
    if not narrative.endswith("."):
        narrative += "."

    return narrative


def detect_block_billing(goal: str) -> Optional[List[str]]:
    """Detect a goal that lumps several activities together.

    Args:
        goal: Goal text to inspect

    Returns:
        The separate activities when a separator splits the goal into more
        than one non-empty part, otherwise None
    """
    lowered = goal.lower()
    for separator in BLOCK_BILLING_SEPARATORS:
        if separator not in lowered:
            continue
        parts = re.split(re.escape(separator), goal, flags=re.IGNORECASE)
        activities = [part.strip() for part in parts if part.strip()]
        if len(activities) > 1:
            return activities
    return None


def convert_to_active_voice(text: str, lexicon: Optional[Lexicon] = None) -> str:
    """Lowercase text and rewrite gerund/passive phrasing in the past tense."""
    lexicon = lexicon or get_lexicon()
    converted = text.lower()

    for passive, active in lexicon.active_voice.items():
        converted = _whole_word(passive).sub(lambda _: active, converted)

    return converted


def validate_output(output: str) -> OutputValidation:
    """Check a narrative against basic quality rules."""
    issues = []

    if len(output) < MIN_OUTPUT_LENGTH:
        issues.append("Output too short")

    lowered = output.lower()
    if any(lowered.startswith(word) for word in FORBIDDEN_STARTS):
        issues.append("Starts with forbidden word")

    words = lowered.split()
    first_word = words[0] if words else ""
    if not any(verb in first_word for verb in ACTION_VERBS):
        issues.append("May not start with action verb")

    return OutputValidation(valid=not issues, issues=issues)


def format_output(output: str) -> str:
    """Prepare a narrative for display.

    Numbered block-billing lists keep one entry per line with surrounding
    whitespace removed; single narratives are only trimmed.
    """
    stripped = output.strip()
    if _NUMBERED_LIST_RE.match(stripped):
        return "\n".join(line.strip() for line in stripped.splitlines() if line.strip())
    return stripped


def _whole_word(phrase: str) -> "re.Pattern[str]":
    return re.compile(rf"\b{re.escape(phrase)}\b", re.IGNORECASE)
