"""
Remote scene analysis and structured extraction.
"""

from sora_assistant.analysis.extractor import (
    DEFAULT_VOCABULARY,
    ExtractedInsight,
    NavigationPolicy,
    Vocabulary,
    extract_insight,
)
from sora_assistant.analysis.prompts import PromptVariant
from sora_assistant.analysis.errors import (
    AnalysisError,
    AnalysisTimeoutError,
    CaptureUnavailableError,
    MalformedResponseError,
    ServiceError,
)
from sora_assistant.analysis.client import AnalysisClient, AnalysisRequest, AnalysisResponse

__all__ = [
    "AnalysisClient",
    "AnalysisError",
    "AnalysisRequest",
    "AnalysisResponse",
    "AnalysisTimeoutError",
    "CaptureUnavailableError",
    "DEFAULT_VOCABULARY",
    "ExtractedInsight",
    "MalformedResponseError",
    "NavigationPolicy",
    "PromptVariant",
    "ServiceError",
    "Vocabulary",
    "extract_insight",
]
