"""
Sequential multi-provider fallback for chat answers.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from shared.errors import ProviderError, ProviderExhaustedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..adapters.providers import ProviderAdapter
from ..adapters.search_client import ContextRetriever, SearchSnippet
from .prompt import FALLBACK_MESSAGE, Prompt, build_prompt

NO_PROVIDER = "none"

logger = get_logger("portal.fallback")


async def run_fallback(
    providers: Sequence[ProviderAdapter],
    prompt: Prompt,
    metrics: Optional[MetricsCollector] = None,
) -> Tuple[str, str, Dict[str, str]]:
    """Try ``providers`` in order and return ``(answer, provider_id, attempts)``.

    A provider is skipped when unconfigured and abandoned on any failure;
    ``attempts`` maps provider name to outcome. Raises ProviderExhaustedError
    when no provider answers.
    """
    attempts: Dict[str, str] = {}
    for provider in providers:
        if not provider.configured:
            attempts[provider.name] = "skipped"
            _record(metrics, provider.name, "skipped")
            continue

        try:
            answer = await provider.complete(prompt)
        except ProviderError as e:
            attempts[provider.name] = e.error
            _record(metrics, provider.name, "failure")
            logger.warning("Provider failed, falling back", provider=provider.name, error=e.error)
            continue
        except Exception as e:
            attempts[provider.name] = f"{provider.name}: {type(e).__name__}"
            _record(metrics, provider.name, "failure")
            logger.error("Provider raised unexpectedly, falling back", provider=provider.name, error=str(e))
            continue

        attempts[provider.name] = "success"
        _record(metrics, provider.name, "success")
        return answer, provider.provider_id, attempts

    raise ProviderExhaustedError(attempts)


def _record(metrics: Optional[MetricsCollector], provider: str, outcome: str):
    if metrics is not None:
        metrics.increment_counter("provider_attempts_total", provider=provider, outcome=outcome)


@dataclass
class FallbackResult:
    answer: str
    provider_id: str
    sources: List[SearchSnippet] = field(default_factory=list)
    attempts: Dict[str, str] = field(default_factory=dict)

    @property
    def exhausted(self) -> bool:
        return self.provider_id == NO_PROVIDER


class FallbackOrchestrator:
    """Answers a question with retrieved context and the first provider that responds."""

    def __init__(
        self,
        providers: Sequence[ProviderAdapter],
        retriever: ContextRetriever,
        *,
        fallback_message: str = FALLBACK_MESSAGE,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.providers = list(providers)
        self.retriever = retriever
        self.fallback_message = fallback_message
        self.metrics = metrics

    async def answer(self, question: str) -> FallbackResult:
        """Never raises for provider failure; exhaustion yields the fixed fallback message."""
        sources = await self.retriever.retrieve(question)
        prompt = build_prompt(question, sources)

        try:
            answer, provider_id, attempts = await run_fallback(self.providers, prompt, self.metrics)
        except ProviderExhaustedError as e:
            logger.error("All providers failed", attempts=e.details["attempts"])
            return FallbackResult(
                answer=self.fallback_message,
                provider_id=NO_PROVIDER,
                sources=sources,
                attempts=e.details["attempts"],
            )

        logger.info("Chat answered", provider=provider_id, context_snippets=len(sources))
        return FallbackResult(answer=answer, provider_id=provider_id, sources=sources, attempts=attempts)
