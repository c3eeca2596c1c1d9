"""
Structured extraction over free-text scene descriptions.

Everything here is a pure function of the raw model text: matching is
case-insensitive substring search against fixed vocabularies, so the same
text always yields the same insight and no input can make extraction fail.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Optional

from sora_assistant.core.text import first_sentence


class NavigationPolicy(str, Enum):
    """How much of the text to surface as navigation guidance."""

    FULL_TEXT = "full_text"
    FIRST_SENTENCE = "first_sentence"


@dataclass(frozen=True)
class Vocabulary:
    """Keyword tables used by the extractor."""

    objects: tuple[str, ...]
    navigation_terms: tuple[str, ...]
    currency_units: tuple[str, ...]
    text_indicators: tuple[str, ...]
    hazards: tuple[str, ...]

    def with_overrides(
        self,
        objects: Optional[Iterable[str]] = None,
        navigation_terms: Optional[Iterable[str]] = None,
        currency_units: Optional[Iterable[str]] = None,
        text_indicators: Optional[Iterable[str]] = None,
        hazards: Optional[Iterable[str]] = None,
    ) -> "Vocabulary":
        """Return a copy with the given tables replaced (empty/None keeps the default)."""
        changes = {}
        for name, terms in (
            ("objects", objects),
            ("navigation_terms", navigation_terms),
            ("currency_units", currency_units),
            ("text_indicators", text_indicators),
            ("hazards", hazards),
        ):
            if terms:
                changes[name] = _normalize_terms(terms)
        return replace(self, **changes) if changes else self


def _normalize_terms(terms: Iterable[str]) -> tuple[str, ...]:
    """Lower-case, strip and de-duplicate terms, keeping first-seen order."""
    seen: dict[str, None] = {}
    for term in terms:
        term = term.strip().lower()
        if term:
            seen.setdefault(term, None)
    return tuple(seen)


DEFAULT_VOCABULARY = Vocabulary(
    objects=(
        "table", "chair", "door", "window", "person", "car", "bottle", "phone", "book", "cup",
        "stairs", "wall", "floor", "counter", "refrigerator", "stove", "microwave", "sink",
        "cabinet", "sofa", "bed", "lamp", "television", "computer", "keyboard", "mouse",
        "plate", "bowl", "spoon", "fork", "knife", "glass", "bag", "box", "basket", "mirror",
        "picture", "clock", "plant", "flower", "tree", "bench", "sidewalk", "curb", "street",
        "building", "sign",
    ),
    navigation_terms=(
        "ahead", "left", "right", "behind", "clear path", "obstacle", "feet", "meters",
        "inches", "forward", "backward", "turn", "step", "move", "avoid", "around", "through",
        "distance",
    ),
    currency_units=(
        "rupee", "dollar", "pound", "euro", "cent", "paisa", "bill", "note", "coin",
    ),
    text_indicators=("text", "sign", "label", "read", "written", "says"),
    hazards=(
        "danger", "warning", "hazard", "careful", "obstacle", "step", "stairs", "edge",
        "slippery", "uneven", "caution", "avoid", "sharp", "hot", "wet", "narrow", "low",
        "high", "drop",
    ),
)


@dataclass(frozen=True)
class ExtractedInsight:
    """Structured hints derived from one analysis response."""

    description: str
    objects: tuple[str, ...] = ()
    navigation_guidance: Optional[str] = None
    currency_detection: Optional[str] = None
    text_content: Optional[str] = None
    safety_warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "description": self.description,
            "objects": list(self.objects),
            "navigation_guidance": self.navigation_guidance,
            "currency_detection": self.currency_detection,
            "text_content": self.text_content,
            "safety_warnings": list(self.safety_warnings),
        }


def _present(terms: Iterable[str], lowered: str) -> tuple[str, ...]:
    """Terms that literally appear in the text, in vocabulary order."""
    return tuple(term for term in terms if term in lowered)


def _currency_pattern(units: tuple[str, ...]) -> re.Pattern:
    alternatives = "|".join(re.escape(unit) for unit in units)
    return re.compile(rf"(\d+)\s*({alternatives})", re.IGNORECASE)


def extract_objects(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> tuple[str, ...]:
    """Known objects mentioned in the text."""
    return _present(vocabulary.objects, text.lower())


def extract_navigation_guidance(
    text: str,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
    policy: NavigationPolicy = NavigationPolicy.FULL_TEXT,
) -> Optional[str]:
    """Navigation text, surfaced only when a directional or obstacle term appears."""
    lowered = text.lower()
    if not any(term in lowered for term in vocabulary.navigation_terms):
        return None
    if policy == NavigationPolicy.FIRST_SENTENCE:
        return first_sentence(text) or None
    return text


def extract_currency(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[str]:
    """First '<digits> <unit>' mention, exactly as written in the text."""
    if not vocabulary.currency_units:
        return None
    match = _currency_pattern(vocabulary.currency_units).search(text)
    return match.group(0) if match else None


def extract_text_content(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[str]:
    """The full text when it mentions readable text, signs or labels."""
    lowered = text.lower()
    if any(indicator in lowered for indicator in vocabulary.text_indicators):
        return text
    return None


def extract_safety_warnings(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> tuple[str, ...]:
    """Hazard words present in the text, in vocabulary order, without duplicates."""
    return _present(vocabulary.hazards, text.lower())


def extract_insight(
    raw_text: Optional[str],
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
    navigation_policy: NavigationPolicy = NavigationPolicy.FULL_TEXT,
) -> ExtractedInsight:
    """
    Derive an ExtractedInsight from raw model text.

    Args:
        raw_text: Text returned by the analysis service (None is treated as empty)
        vocabulary: Keyword tables to match against
        navigation_policy: Whether navigation guidance is the full text or its first sentence

    Returns:
        ExtractedInsight whose description is the raw text itself
    """
    text = raw_text or ""

    return ExtractedInsight(
        description=text,
        objects=extract_objects(text, vocabulary),
        navigation_guidance=extract_navigation_guidance(text, vocabulary, navigation_policy),
        currency_detection=extract_currency(text, vocabulary),
        text_content=extract_text_content(text, vocabulary),
        safety_warnings=extract_safety_warnings(text, vocabulary),
    )
