"""
Core utilities shared by capture, extraction and speech output.
"""

from sora_assistant.core.image import EncodedImage
from sora_assistant.core.text import clean_text_for_speech, first_sentence, split_sentences

__all__ = [
    "EncodedImage",
    "clean_text_for_speech",
    "first_sentence",
    "split_sentences",
]
