"""
OpenRouter Base Client
======================

Async HTTP client for the OpenRouter chat-completions API. This is the
production ``TextSynthesisProvider`` used by the consensus synthesizer.
"""

import httpx
import logging
from typing import Optional, Dict, List, Protocol
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class LLMCallResult:
    """Result from an LLM API call"""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw_response: Optional[Dict] = None
    success: bool = True
    error: Optional[str] = None


class TextSynthesisProvider(Protocol):
    """Anything that turns a system + user prompt into a JSON string."""

    model: str

    async def complete(self, system_prompt: str, user_prompt: str) -> LLMCallResult:
        ...


class OpenRouterBaseClient:
    """
    Async client for OpenRouter API.

    Never raises for API failures; errors come back as
    ``LLMCallResult(success=False, error=...)``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 60,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        app_name: str = "Verdict Consensus",
    ):
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.app_name = app_name
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def complete(self, system_prompt: str, user_prompt: str) -> LLMCallResult:
        """Ask for a JSON object answer to a single system + user exchange."""
        return await self.call(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
        )

    async def call(
        self,
        messages: List[Dict[str, str]],
        response_format: Optional[Dict] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMCallResult:
        """
        Make an API call to OpenRouter.

        Args:
            messages: List of message dicts with role and content
            response_format: Optional format spec (e.g., {"type": "json_object"})
            temperature: Sampling temperature, defaults to the client's
            max_tokens: Maximum response tokens, defaults to the client's

        Returns:
            LLMCallResult with content or error
        """
        if not self.api_key:
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error="API key not configured"
            )

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }

        if response_format:
            payload["response_format"] = response_format

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.app_name
        }

        try:
            client = await self._get_client()
            response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                logger.error(f"OpenRouter response missing content: {e}")
                return LLMCallResult(
                    content="",
                    model=self.model,
                    success=False,
                    error=f"Response missing content: {e}",
                    raw_response=data
                )

            usage = data.get("usage") or {}

            return LLMCallResult(
                content=content or "",
                model=self.model,
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
                raw_response=data,
                success=True
            )

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenRouter API error: {e.response.status_code}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenRouter request failed: {e}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error=str(e)
            )
