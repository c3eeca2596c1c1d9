"""
Text processing utilities for model output.

Vision-language models answer in lightly formatted markdown; these helpers
turn that into something a speech engine can read aloud and split it into
sentences.
"""

import re

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def strip_markdown(text: str) -> str:
    """Remove common markdown formatting, keeping the readable content."""
    # Remove code blocks
    text = re.sub(r"```[\s\S]*?```", "", text)

    # Remove images
    text = re.sub(r"!\[.*?\]\(.*?\)", "", text)

    # Remove links, keep text
    text = re.sub(r"\[(.+?)\]\(.+?\)", r"\1", text)

    # Remove headers
    text = re.sub(r"^#{1,6}\s*", "", text, flags=re.MULTILINE)

    # Remove bold
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)

    # Remove italic
    text = re.sub(r"\*(.+?)\*", r"\1", text)

    # Remove inline code
    text = re.sub(r"`(.+?)`", r"\1", text)

    # Remove list bullets
    text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)

    return text


def clean_text_for_speech(text: str) -> str:
    """
    Clean text for better TTS output.

    Args:
        text: Raw text

    Returns:
        Cleaned text suitable for speech synthesis
    """
    text = strip_markdown(text)

    # Remove URLs
    text = re.sub(r"https?://\S+", "", text)

    # Remove special characters except basic punctuation
    text = re.sub(r"[^\w\s.,!?;:'\"$%-]", " ", text)

    # Normalize whitespace
    text = re.sub(r"\s+", " ", text)

    return text.strip()


def split_sentences(text: str) -> list[str]:
    """
    Split text into sentences.

    Args:
        text: Text to split

    Returns:
        Non-empty sentences, each a substring of the input
    """
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text.strip()) if s.strip()]


def first_sentence(text: str) -> str:
    """First sentence of the text, or an empty string."""
    sentences = split_sentences(text)
    return sentences[0] if sentences else ""
