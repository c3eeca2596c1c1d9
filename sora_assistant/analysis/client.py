"""
Client for the remote vision-language analysis service (Gemini generateContent).

One POST per activation: the frame goes up as base64 inline data together
with a fixed instruction template, and the first text part of the first
candidate comes back as the raw description.
"""

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from sora_assistant.analysis.errors import (
    AnalysisTimeoutError,
    MalformedResponseError,
    ServiceError,
)
from sora_assistant.analysis.prompts import PromptVariant, get_max_output_tokens, get_prompt
from sora_assistant.core.image import EncodedImage
from sora_assistant.config import AnalysisConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRequest:
    """One frame plus the instruction variant to send with it."""

    image_bytes: bytes
    mime_type: str = "image/jpeg"
    prompt_variant: PromptVariant = PromptVariant.DETAILED

    def to_payload(self, temperature: float) -> dict[str, Any]:
        """Build the JSON body for generateContent."""
        return {
            "contents": [
                {
                    "parts": [
                        {"text": get_prompt(self.prompt_variant)},
                        {
                            "inline_data": {
                                "mime_type": self.mime_type,
                                "data": base64.b64encode(self.image_bytes).decode("ascii"),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {
                "maxOutputTokens": get_max_output_tokens(self.prompt_variant),
                "temperature": temperature,
            },
        }


@dataclass(frozen=True)
class AnalysisResponse:
    """Raw text returned by the service."""

    raw_text: str


def parse_response_text(body: Any) -> str:
    """
    Pull candidates[0].content.parts[0].text out of a response body.

    Raises:
        MalformedResponseError: If the field is missing, not a string, or empty
    """
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError("Response has no candidate text") from e

    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError("Response candidate text is empty")

    return text


class AnalysisClient:
    """
    Async client for the analysis service.

    Usage:
        async with AnalysisClient(config) as client:
            response = await client.analyze(frame)
            print(response.raw_text)
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize analysis client.

        Args:
            config: Service settings (API key, model, deadline)
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        self.config = config or AnalysisConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout_s)

    @property
    def endpoint(self) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/models/{self.config.model}:generateContent"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["x-goog-api-key"] = self.config.api_key
        return headers

    async def analyze(
        self,
        image: EncodedImage,
        prompt_variant: Optional[PromptVariant] = None,
    ) -> AnalysisResponse:
        """
        Analyze one frame.

        Args:
            image: Encoded still image
            prompt_variant: Instruction template (defaults to the configured one)

        Returns:
            AnalysisResponse with the model's raw text

        Raises:
            ServiceError: Non-success status or transport failure
            MalformedResponseError: Success body without the expected text
            AnalysisTimeoutError: No answer before the configured deadline
        """
        request = AnalysisRequest(
            image_bytes=image.data,
            mime_type=image.mime_type,
            prompt_variant=prompt_variant or self.config.prompt_variant,
        )
        payload = request.to_payload(self.config.temperature)

        logger.debug(
            "Analysis request: %s (%d bytes, %s)",
            self.config.model, len(image.data), request.prompt_variant.value,
        )

        start = time.perf_counter()
        try:
            resp = await asyncio.wait_for(
                self._client.post(self.endpoint, json=payload, headers=self._headers()),
                timeout=self.config.timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise AnalysisTimeoutError(self.config.timeout_s) from e
        except httpx.HTTPError as e:
            raise ServiceError(None, str(e)) from e

        latency = (time.perf_counter() - start) * 1000

        if not resp.is_success:
            logger.warning("Analysis service returned %d (%.0fms)", resp.status_code, latency)
            raise ServiceError(resp.status_code, resp.reason_phrase)

        try:
            body = resp.json()
        except ValueError as e:
            raise MalformedResponseError("Response body is not JSON") from e

        text = parse_response_text(body)
        logger.debug("Analysis response: %d chars (%.0fms)", len(text), latency)
        return AnalysisResponse(raw_text=text)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False
