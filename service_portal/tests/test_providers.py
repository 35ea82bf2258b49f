"""
Unit tests for the search client and completion provider adapters.
"""

import json

import httpx
import pytest

from service_portal.app.adapters.providers import GeminiAdapter, GroqAdapter, OpenRouterAdapter
from service_portal.app.adapters.search_client import ContextRetriever, SearchSnippet
from service_portal.app.orchestration.fallback import run_fallback
from service_portal.app.orchestration.prompt import SYSTEM_PROMPT, build_prompt
from shared.errors import ProviderError


def _client(handler, seen):
    def recording(request):
        seen.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(recording))


@pytest.fixture
def prompt():
    snippets = [SearchSnippet("MBA Admissions", "https://ifheindia.org/mba", "Applications open in May")]
    return build_prompt("When do MBA admissions open?", snippets)


class TestContextRetriever:
    """Test cases for ContextRetriever."""

    @pytest.mark.asyncio
    async def test_site_restricted_query(self):
        """The query is scoped to the configured site and capped at five results."""
        seen = []
        items = [{"title": f"T{i}", "link": f"https://ifheindia.org/{i}", "snippet": f"S{i}"} for i in range(7)]
        retriever = ContextRetriever(
            "cse-key", "engine-1",
            client=_client(lambda r: httpx.Response(200, json={"items": items}), seen),
        )

        snippets = await retriever.retrieve("hostel fees")

        params = seen[0].url.params
        assert params["q"] == "hostel fees site:ifheindia.org"
        assert params["num"] == "5"
        assert params["cx"] == "engine-1"
        assert len(snippets) == 5
        assert snippets[0] == SearchSnippet("T0", "https://ifheindia.org/0", "S0")

    @pytest.mark.asyncio
    async def test_unconfigured_returns_empty(self):
        """No request is made without credentials."""
        seen = []
        retriever = ContextRetriever("", "", client=_client(lambda r: httpx.Response(200, json={}), seen))

        assert await retriever.retrieve("anything") == []
        assert seen == []

    @pytest.mark.asyncio
    async def test_no_items_or_failure_returns_empty(self):
        seen = []
        retriever = ContextRetriever("k", "cx", client=_client(lambda r: httpx.Response(200, json={}), seen))
        assert await retriever.retrieve("q") == []

        failing = ContextRetriever("k", "cx", client=_client(lambda r: httpx.Response(500, text="boom"), seen))
        assert await failing.retrieve("q") == []


class TestPrompt:
    """Test cases for prompt construction."""

    def test_context_block(self, prompt):
        assert prompt.context == "MBA Admissions: Applications open in May"
        assert prompt.user_message() == (
            "Context from IFHE website:\nMBA Admissions: Applications open in May\n\n"
            "Question: When do MBA admissions open?"
        )
        assert prompt.full_text().startswith(SYSTEM_PROMPT + "\n\nContext from IFHE website:")


class TestGeminiAdapter:
    """Test cases for GeminiAdapter."""

    @pytest.mark.asyncio
    async def test_request_envelope_and_answer(self, prompt):
        seen = []
        response = {"candidates": [{"content": {"parts": [{"text": "In **May**."}]}}]}
        adapter = GeminiAdapter("g-key", client=_client(lambda r: httpx.Response(200, json=response), seen))

        answer = await adapter.complete(prompt)

        assert answer == "In **May**."
        assert adapter.provider_id == "gemini-1.5-flash"
        request = seen[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert request.url.params["key"] == "g-key"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == prompt.full_text()
        assert body["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 1000}

    @pytest.mark.asyncio
    async def test_missing_candidate_is_provider_error(self, prompt):
        adapter = GeminiAdapter("g-key", client=_client(lambda r: httpx.Response(200, json={"candidates": []}), []))
        with pytest.raises(ProviderError):
            await adapter.complete(prompt)

    @pytest.mark.asyncio
    async def test_unconfigured_is_provider_error(self, prompt):
        seen = []
        adapter = GeminiAdapter("", client=_client(lambda r: httpx.Response(200, json={}), seen))

        assert adapter.configured is False
        with pytest.raises(ProviderError):
            await adapter.complete(prompt)
        assert seen == []


class TestChatCompletionsAdapters:
    """Test cases for Groq and OpenRouter adapters."""

    @pytest.mark.asyncio
    async def test_groq_envelope(self, prompt):
        seen = []
        response = {"choices": [{"message": {"role": "assistant", "content": "May 1st."}}]}
        adapter = GroqAdapter("groq-key", client=_client(lambda r: httpx.Response(200, json=response), seen))

        assert await adapter.complete(prompt) == "May 1st."
        assert adapter.provider_id == "deepseek-r1-distill-llama-70b"

        request = seen[0]
        assert str(request.url) == "https://api.groq.com/openai/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer groq-key"
        body = json.loads(request.content)
        assert body["model"] == "deepseek-r1-distill-llama-70b"
        assert body["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt.user_message()},
        ]
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_openrouter_headers_and_label(self, prompt):
        seen = []
        response = {"choices": [{"message": {"content": "Answer"}}]}
        adapter = OpenRouterAdapter(
            "or-key",
            referer="https://portal.example",
            client=_client(lambda r: httpx.Response(200, json=response), seen),
        )

        assert await adapter.complete(prompt) == "Answer"
        assert adapter.provider_id == "qwen2.5-14b-instruct"
        headers = seen[0].headers
        assert headers["HTTP-Referer"] == "https://portal.example"
        assert headers["X-Title"] == "IFHE Campus Assistant"
        assert json.loads(seen[0].content)["model"] == "qwen/qwen2.5-14b-instruct"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,payload", [
        (500, {"error": "upstream"}),
        (200, {"choices": [{"message": {"content": ""}}]}),
        (200, {"choices": []}),
        (200, {"unexpected": True}),
    ])
    async def test_unusable_responses(self, prompt, status, payload):
        adapter = GroqAdapter("k", client=_client(lambda r: httpx.Response(status, json=payload), []))
        with pytest.raises(ProviderError):
            await adapter.complete(prompt)


class TestProviderRecovery:
    """Test cases for providers recovering between requests."""

    @pytest.mark.asyncio
    async def test_recovered_provider_answers_again(self, prompt):
        """A provider that failed on earlier requests is still tried first on the next one."""
        gemini_calls = []
        answer = {"candidates": [{"content": {"parts": [{"text": "From Gemini"}]}}]}

        def gemini_handler(request):
            if len(gemini_calls) <= 5:
                return httpx.Response(503, json={"error": "overloaded"})
            return httpx.Response(200, json=answer)

        groq_response = {"choices": [{"message": {"content": "From Groq"}}]}
        gemini = GeminiAdapter("g-key", client=_client(gemini_handler, gemini_calls))
        groq = GroqAdapter("k", client=_client(lambda r: httpx.Response(200, json=groq_response), []))

        results = [await run_fallback([gemini, groq], prompt) for _ in range(6)]

        assert [provider_id for _, provider_id, _ in results[:5]] == ["deepseek-r1-distill-llama-70b"] * 5
        text, provider_id, attempts = results[5]
        assert (text, provider_id) == ("From Gemini", "gemini-1.5-flash")
        assert attempts == {"gemini": "success"}
        assert len(gemini_calls) == 6
