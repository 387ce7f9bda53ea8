"""Async client for an OpenAI-compatible chat completions endpoint."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when the model endpoint cannot produce a completion."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMClient:
    """Requests JSON-object completions from a hosted model."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings) -> "LLMClient":
        return cls(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy-init httpx.AsyncClient."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def complete_json(self, system: str, prompt: str) -> str:
        """Return the raw message content of a JSON-object completion."""
        if not self.api_key:
            raise LLMError("Recipe model API key not configured")

        try:
            response = await self._get_http_client().post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                    "response_format": {"type": "json_object"},
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                },
            )
        except httpx.TimeoutException:
            raise LLMError("Timeout calling recipe model", status_code=408)
        except httpx.HTTPError as e:
            raise LLMError(f"Connection error to recipe model: {e}", status_code=503)

        if response.status_code != 200:
            raise LLMError(
                f"Recipe model returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Invalid completion response structure: {e}")

        if not content:
            raise LLMError("Recipe model returned an empty completion")
        return content

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
