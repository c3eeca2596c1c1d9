"""
Sora Assistant - voice and button activated visual assistance for the
visually impaired.
"""

import logging

# Quiet chatty third-party loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("comtypes").setLevel(logging.ERROR)

__version__ = "0.1.0"

from sora_assistant.analysis.extractor import ExtractedInsight, extract_insight

__all__ = ["ExtractedInsight", "extract_insight", "__version__"]
