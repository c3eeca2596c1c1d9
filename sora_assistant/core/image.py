"""
Encoded still image passed from frame capture to analysis.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class EncodedImage:
    """A single lossy-encoded frame."""

    data: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"
