"""
Generative model clients for deal evaluation.

The evaluator talks to models through the LLMProvider interface; the
Gemini implementation enables Google Search grounding so the model can
look up current retail and used prices before scoring a listing.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests
from google import genai
from google.genai import types

from ..utils.logging import get_logger

logger = get_logger("evaluator")

DEFAULT_GEMINI_MODEL = "gemini-3-flash-preview"
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"
IMAGE_FETCH_HEADERS = {"User-Agent": "Mozilla/5.0"}


@dataclass
class ImagePayload:
    """Downloaded image bytes with their content type."""

    data: bytes
    mime_type: str = DEFAULT_IMAGE_MIME_TYPE


@dataclass
class LLMResponse:
    """Raw response from a model provider."""

    content: str
    provider: str
    model: str
    response_time: float
    tokens_used: Optional[int] = None


def fetch_image(url: str, timeout: float = 10.0, session=None) -> Optional[ImagePayload]:
    """Download an image for inline model input; None on any failure."""
    http = session or requests
    try:
        response = http.get(url, headers=IMAGE_FETCH_HEADERS, timeout=timeout)
        if not response.ok:
            logger.debug(f"Image fetch returned HTTP {response.status_code}: {url}")
            return None
        content_type = response.headers.get("content-type") or DEFAULT_IMAGE_MIME_TYPE
        return ImagePayload(
            data=response.content,
            mime_type=content_type.split(";")[0].strip() or DEFAULT_IMAGE_MIME_TYPE,
        )
    except requests.exceptions.RequestException as e:
        logger.debug(f"Image fetch failed for {url}: {e}")
        return None


class LLMProvider(ABC):
    """Abstract base class for model providers."""

    def __init__(self, model: str, timeout: float = 60.0):
        self.model = model
        self.timeout = timeout

    @abstractmethod
    async def generate(
        self, prompt: str, images: Optional[List[ImagePayload]] = None
    ) -> LLMResponse:
        """Send a prompt with optional inline images and return the text reply."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test connection to the provider."""
        pass


class GeminiClient(LLMProvider):
    """Gemini client with Google Search grounding enabled."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout: float = 60.0,
        client: Optional[genai.Client] = None,
    ):
        super().__init__(model, timeout)
        if not api_key and client is None:
            raise ValueError("Gemini API key is required")
        # HttpOptions.timeout is in milliseconds
        self.client = client or genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        self.generation_config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())]
        )

    def _build_contents(self, prompt: str, images: Optional[List[ImagePayload]]) -> list:
        contents: list = [prompt]
        for image in images or []:
            contents.append(
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type)
            )
        return contents

    async def generate(
        self, prompt: str, images: Optional[List[ImagePayload]] = None
    ) -> LLMResponse:
        """Call Gemini with web search grounding and inline images."""
        start_time = time.time()

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=self._build_contents(prompt, images),
            config=self.generation_config,
        )

        usage = getattr(response, "usage_metadata", None)
        return LLMResponse(
            content=(response.text or "").strip(),
            provider="google",
            model=self.model,
            response_time=time.time() - start_time,
            tokens_used=getattr(usage, "total_token_count", None),
        )

    async def test_connection(self) -> bool:
        """Check that the configured model is reachable with our key."""
        try:
            await self.client.aio.models.get(model=self.model)
            return True
        except Exception as e:
            logger.error(f"Gemini connection test failed: {e}")
            return False
