"""
Completion provider adapters.

Each adapter wraps one hosted inference API in its own request envelope and
reduces the response to a plain answer string. Anything short of a non-empty
answer raises ``ProviderError`` so the fallback runner can move on.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import ProviderError
from shared.logging import get_logger
from ..orchestration.prompt import Prompt

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"
OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"

TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 1000


class ProviderAdapter:
    """Base class for completion providers.

    Subclasses implement ``_send`` and ``_extract``; ``complete`` adds the
    configuration check and uniform error mapping. Adapters hold no
    state between calls.
    """

    name = "provider"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.model = model
        self.logger = get_logger(f"portal.providers.{self.name}")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def provider_id(self) -> str:
        """Label reported as ``model_used`` when this provider answers."""
        return self.model

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def close(self):
        await self._client.aclose()

    async def complete(self, prompt: Prompt) -> str:
        if not self.configured:
            raise ProviderError(self.name, "API key not configured")
        try:
            response = await self._send(prompt)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"Transport error: {e}") from e

        if response.is_error:
            raise ProviderError(
                self.name,
                f"HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(self.name, "Response is not JSON") from e

        answer = self._extract(payload)
        if not isinstance(answer, str) or not answer.strip():
            raise ProviderError(self.name, "Response carried no answer")
        return answer

    async def _send(self, prompt: Prompt) -> httpx.Response:
        raise NotImplementedError

    def _extract(self, payload: Any) -> Optional[str]:
        raise NotImplementedError


class GeminiAdapter(ProviderAdapter):
    """Google Gemini ``generateContent``; the whole prompt travels as one text part."""

    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash", *, base_url: str = GEMINI_API_BASE, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url.rstrip("/")

    async def _send(self, prompt: Prompt) -> httpx.Response:
        body = {
            "contents": [{"parts": [{"text": prompt.full_text()}]}],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
            },
        }
        return await self._client.post(
            f"{self.base_url}/{self.model}:generateContent",
            params={"key": self.api_key},
            json=body,
        )

    def _extract(self, payload: Any) -> Optional[str]:
        try:
            return payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None


class ChatCompletionsAdapter(ProviderAdapter):
    """OpenAI-compatible ``/chat/completions`` endpoint."""

    url = ""

    def __init__(self, api_key: str, model: str, *, url: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        if url:
            self.url = url

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _messages(self, prompt: Prompt) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": prompt.user_message()},
        ]

    async def _send(self, prompt: Prompt) -> httpx.Response:
        body = {
            "model": self.model,
            "messages": self._messages(prompt),
            "temperature": TEMPERATURE,
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        return await self._client.post(self.url, headers=self._headers(), json=body)

    def _extract(self, payload: Any) -> Optional[str]:
        try:
            return payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None


class GroqAdapter(ChatCompletionsAdapter):
    name = "groq"
    url = GROQ_CHAT_URL

    def __init__(self, api_key: str, model: str = "deepseek-r1-distill-llama-70b", **kwargs):
        super().__init__(api_key, model, **kwargs)


class OpenRouterAdapter(ChatCompletionsAdapter):
    """OpenRouter; reports the model without its vendor prefix."""

    name = "openrouter"
    url = OPENROUTER_CHAT_URL

    def __init__(
        self,
        api_key: str,
        model: str = "qwen/qwen2.5-14b-instruct",
        *,
        referer: str = "https://ifhe-campus-assistant.pages.dev",
        title: str = "IFHE Campus Assistant",
        **kwargs,
    ):
        super().__init__(api_key, model, **kwargs)
        self.referer = referer
        self.title = title

    @property
    def provider_id(self) -> str:
        return self.model.rsplit("/", 1)[-1]

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["HTTP-Referer"] = self.referer
        headers["X-Title"] = self.title
        return headers
