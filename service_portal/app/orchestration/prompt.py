"""
Prompt construction shared by every completion provider.
"""

from dataclasses import dataclass
from typing import Sequence

from ..adapters.search_client import SearchSnippet

SYSTEM_PROMPT = """You are an AI assistant for IFHE (Indian School of Business & Finance) Hyderabad campus. You should ONLY answer questions related to IFHE Hyderabad, its programs, admissions, campus life, facilities, faculty, events, and student services.

Key information about IFHE:
- Full name: Indian School of Business & Finance (IFHE) Hyderabad
- Programs: MBA, BBA, B.Com, M.Com, PhD programs
- Campus located in Hyderabad, India
- Focus on business, finance, and management education
- Strong industry connections and placement support

Guidelines:
1. Answer ONLY about IFHE Hyderabad - politely decline questions about other topics
2. Be helpful, accurate, and informative
3. If you don't know specific details, suggest contacting IFHE administration
4. Provide practical advice for prospective and current students
5. Keep responses concise but comprehensive
6. Use a friendly, professional tone suitable for students

If asked about topics unrelated to IFHE, respond: "I'm specifically designed to help with questions about IFHE Hyderabad. Please ask me about admissions, programs, campus facilities, or student services at IFHE.\""""

FALLBACK_MESSAGE = """I apologize, but I'm currently unable to process your question due to technical issues. Please try again in a moment or contact IFHE administration directly for immediate assistance.

\U0001F3EB **IFHE Hyderabad Contact:**
- Website: https://ifheindia.org
- Phone: +91-40-xxxx-xxxx
- Email: info@ifheindia.org

<small><em>Our AI assistant will be back online shortly. Thank you for your patience!</em></small>"""

CONTEXT_HEADING = "Context from IFHE website:"


@dataclass(frozen=True)
class Prompt:
    """System instruction, retrieved context and the raw question."""

    system: str
    context: str
    question: str

    def user_message(self) -> str:
        """Context block followed by the question, for chat-style envelopes."""
        return f"{CONTEXT_HEADING}\n{self.context}\n\nQuestion: {self.question}"

    def full_text(self) -> str:
        """System instruction prepended to the user message, for single-text envelopes."""
        return f"{self.system}\n\n{self.user_message()}"


def build_context(snippets: Sequence[SearchSnippet]) -> str:
    return "\n".join(f"{snippet.title}: {snippet.excerpt}" for snippet in snippets)


def build_prompt(question: str, snippets: Sequence[SearchSnippet], system: str = SYSTEM_PROMPT) -> Prompt:
    return Prompt(system=system, context=build_context(snippets), question=question)
