"""
Rendering of provider answers as chat HTML.
"""

import html
import re
from typing import Sequence

from ..adapters.search_client import SearchSnippet

LINKS_HEADING = "<br><br><strong>\U0001F4DA Useful Links:</strong><ul>"
DISCLAIMER = (
    "<br><br><small><em>\U0001F4A1 This information is generated by AI and may not be completely "
    "accurate. For official information, please verify with IFHE administration or check the "
    "official website.</em></small>"
)

# Applied in order; bold must run before italic.
_MARKDOWN_RULES = (
    (re.compile(r"\*\*(.*?)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"\*(.*?)\*"), r"<em>\1</em>"),
    (re.compile(r"\n"), "<br>"),
    (re.compile(r"`(.*?)`"), r"<code>\1</code>"),
)


def format_html(text: str, links: Sequence[SearchSnippet]) -> str:
    """Convert the supported markdown subset, then append source links and the disclaimer."""
    rendered = text
    for pattern, replacement in _MARKDOWN_RULES:
        rendered = pattern.sub(replacement, rendered)

    if links:
        rendered += LINKS_HEADING
        for link in links:
            rendered += (
                f'<li><a href="{html.escape(link.link, quote=True)}" target="_blank" '
                f'rel="noopener noreferrer">{html.escape(link.title)}</a></li>'
            )
        rendered += "</ul>"

    return rendered + DISCLAIMER
