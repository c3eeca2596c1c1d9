"""
Wake phrase detection over finalized transcripts.

Matching is plain substring search on the lower-cased transcript. A slightly
misheard phrase ("hey sonar") is a miss; that is accepted in exchange for
predictable behaviour.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_WAKE_PHRASES = ("hey sora", "wake sora")


class WakePhraseDetector(ABC):
    """Abstract base class for wake phrase detectors."""

    @abstractmethod
    def detect(self, transcript: str) -> bool:
        """
        Check if the wake phrase is present in a transcript.

        Args:
            transcript: Finalized transcript text

        Returns:
            True if wake phrase detected
        """


class SubstringWakeDetector(WakePhraseDetector):
    """Matches when any configured phrase appears verbatim in the transcript."""

    def __init__(self, phrases: Iterable[str] = DEFAULT_WAKE_PHRASES):
        self.phrases = tuple(p.strip().lower() for p in phrases if p.strip())
        if not self.phrases:
            raise ValueError("At least one wake phrase is required")
        logger.debug("Wake phrases: %s", ", ".join(self.phrases))

    def detect(self, transcript: str) -> bool:
        lowered = transcript.lower()
        return any(phrase in lowered for phrase in self.phrases)


def create_wake_detector(
    backend: str = "substring",
    phrases: Iterable[str] = DEFAULT_WAKE_PHRASES,
) -> WakePhraseDetector:
    """
    Factory function to create a wake phrase detector.

    Args:
        backend: "substring"
        phrases: Phrases to listen for (substring backend)

    Returns:
        WakePhraseDetector instance
    """
    if backend == "substring":
        return SubstringWakeDetector(phrases)
    else:
        raise ValueError(f"Unknown wake phrase backend: {backend}")
