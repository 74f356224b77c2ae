"""
Billing lexicon tables.

Loads the activity catalogue, activity verbs, vocabulary substitutions and
active-voice table from versioned YAML data shipped with the package.
"""

from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

import yaml


DEFAULT_VERB = "Performed"


@dataclass(frozen=True)
class Activity:
    """A billable activity type offered to the user."""
    id: str
    label: str
    description: str


@dataclass(frozen=True)
class Lexicon:
    """Read-only lexical tables driving the deterministic transformer."""
    activities: Tuple[Activity, ...]
    activity_verbs: Mapping[str, str]
    vocabulary: Mapping[str, Tuple[str, ...]]
    active_voice: Mapping[str, str]

    @property
    def activity_ids(self) -> Tuple[str, ...]:
        return tuple(activity.id for activity in self.activities)

    def verb_for(self, activity: str) -> str:
        """Get the base verb phrase for an activity, defaulting to "Performed"."""
        return self.activity_verbs.get(activity, DEFAULT_VERB)

    def canonical_term(self, generic: str) -> str:
        """Get the canonical (first-listed) alternative for a generic term."""
        return self.vocabulary[generic][0]


def load_lexicon(path: Optional[str] = None) -> Lexicon:
    """Load and validate a lexicon from YAML.

    Args:
        path: Optional path to a lexicon file; the packaged lexicon is used
            when omitted

    Returns:
        Validated Lexicon

    Raises:
        ValueError: If the lexicon is structurally invalid
    """
    if path is None:
        text = resources.files("timecraft.config").joinpath("lexicon.yaml").read_text(encoding="utf-8")
    else:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()

    raw = yaml.safe_load(text)
    if not isinstance(raw, dict):
        raise ValueError("Lexicon must be a dictionary")

    allowed_keys = {'activities', 'activity_verbs', 'vocabulary', 'active_voice'}
    unknown_keys = set(raw.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown lexicon keys: {unknown_keys}")
    missing_keys = allowed_keys - set(raw.keys())
    if missing_keys:
        raise ValueError(f"Missing lexicon sections: {missing_keys}")

    activities = _parse_activities(raw['activities'])

    activity_verbs = _parse_string_map(raw['activity_verbs'], 'activity_verbs')
    unmapped = [a.id for a in activities if a.id not in activity_verbs]
    if unmapped:
        raise ValueError(f"Activities without a verb: {unmapped}")

    vocabulary_data = raw['vocabulary']
    if not isinstance(vocabulary_data, dict):
        raise ValueError("'vocabulary' must be a dictionary")
    vocabulary = {}
    for term, alternatives in vocabulary_data.items():
        if not isinstance(alternatives, list) or not alternatives:
            raise ValueError(f"Vocabulary term '{term}' needs at least one alternative")
        if not all(isinstance(alt, str) and alt.strip() for alt in alternatives):
            raise ValueError(f"Vocabulary term '{term}' has a non-string alternative")
        vocabulary[str(term)] = tuple(alternatives)

    active_voice = _parse_string_map(raw['active_voice'], 'active_voice')

    return Lexicon(
        activities=activities,
        activity_verbs=MappingProxyType(activity_verbs),
        vocabulary=MappingProxyType(vocabulary),
        active_voice=MappingProxyType(active_voice),
    )


def _parse_activities(data) -> Tuple[Activity, ...]:
    if not isinstance(data, list) or not data:
        raise ValueError("'activities' must be a non-empty list")

    activities: List[Activity] = []
    seen = set()
    for item in data:
        if not isinstance(item, dict) or not {'id', 'label', 'description'} <= set(item):
            raise ValueError(f"Invalid activity entry: {item!r}")
        if item['id'] in seen:
            raise ValueError(f"Duplicate activity id: {item['id']}")
        seen.add(item['id'])
        activities.append(Activity(
            id=item['id'],
            label=item['label'],
            description=item['description'],
        ))
    return tuple(activities)


def _parse_string_map(data, section: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"'{section}' must be a dictionary")
    for key, value in data.items():
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"'{section}.{key}' must be a non-empty string")
    return {str(key): value for key, value in data.items()}


@lru_cache(maxsize=1)
def get_lexicon() -> Lexicon:
    """Get the packaged lexicon, loaded once per process."""
    return load_lexicon()
