"""
Gemini API Client

Thin async wrapper around LangChain's Gemini chat model. Used only to ask
which drug class a medication belongs to; callers get text back or an
OracleError, never a fabricated answer.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import asyncio
from datetime import datetime

from langchain_google_genai import ChatGoogleGenerativeAI

from medsafety.config import settings
from medsafety.utils import get_logger, OracleError

logger = get_logger(__name__)


@dataclass
class GeminiConfig:
    """Configuration for Gemini client."""
    api_key: Optional[str] = field(default_factory=lambda: settings.gemini_api_key)
    model: str = field(default_factory=lambda: settings.gemini_model)
    temperature: float = field(default_factory=lambda: settings.oracle_temperature)
    max_output_tokens: int = 1024
    request_timeout_seconds: float = field(default_factory=lambda: settings.oracle_timeout_seconds)
    # Failed calls are terminal for the medication; no transport-level retries.
    max_retries: int = 0


@dataclass
class GeminiResponse:
    """Structured response from Gemini."""
    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "model": self.model,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "latency_ms": round(self.latency_ms, 2),
        }


def _content_text(content: Any) -> str:
    """LangChain returns either a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class GeminiClient:
    """
    Client for Google Gemini API.

    The underlying model is created lazily on first use so that a missing API
    key only fails the requests that actually need the oracle.
    """

    def __init__(self, config: Optional[GeminiConfig] = None):
        self.config = config or GeminiConfig()
        self._llm: Optional[ChatGoogleGenerativeAI] = None
        self._request_count = 0
        self._last_request_time: Optional[datetime] = None

    @property
    def is_available(self) -> bool:
        """True when credentials are configured."""
        return bool(self.config.api_key)

    def _get_llm(self) -> ChatGoogleGenerativeAI:
        if self._llm is not None:
            return self._llm

        if not self.is_available:
            logger.error("GEMINI_API_KEY is not defined")
            raise OracleError("GEMINI_API_KEY is not defined")

        try:
            self._llm = ChatGoogleGenerativeAI(
                model=self.config.model,
                temperature=self.config.temperature,
                max_output_tokens=self.config.max_output_tokens,
                timeout=self.config.request_timeout_seconds,
                max_retries=self.config.max_retries,
                google_api_key=self.config.api_key,
            )
        except Exception as e:
            logger.error(f"Failed to initialize LangChain Gemini: {e}")
            raise OracleError(f"Gemini client initialization failed: {e}") from e

        logger.info(f"LangChain Gemini client initialized with model: {self.config.model}")
        return self._llm

    async def generate_async(self, prompt: str) -> GeminiResponse:
        """
        Send one prompt and return the model's text.

        Raises:
            OracleError: missing credentials, timeout, transport failure or empty reply
        """
        llm = self._get_llm()
        start_time = datetime.now()

        try:
            response = await asyncio.wait_for(
                llm.ainvoke(prompt),
                timeout=self.config.request_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Gemini call timed out after {self.config.request_timeout_seconds}s")
            raise OracleError("Gemini request timed out") from e
        except Exception as e:
            logger.error(f"Gemini generation failed: {e}")
            raise OracleError(f"Gemini request failed: {e}") from e

        latency = (datetime.now() - start_time).total_seconds() * 1000
        text = _content_text(getattr(response, "content", response))
        if not text.strip():
            raise OracleError("No valid response from Gemini")

        prompt_tokens = 0
        completion_tokens = 0
        usage = getattr(response, "usage_metadata", None)
        if usage:
            prompt_tokens = usage.get("input_tokens", 0)
            completion_tokens = usage.get("output_tokens", 0)

        self._request_count += 1
        self._last_request_time = datetime.now()

        return GeminiResponse(
            text=text,
            model=self.config.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            "is_available": self.is_available,
            "model": self.config.model,
            "request_count": self._request_count,
            "last_request": self._last_request_time.isoformat() if self._last_request_time else None
        }
