"""
Markdown rendering for event descriptions. The output is sanitized against an
allowlist before it is stored.
"""

from typing import Dict, Optional, Set
from urllib.parse import unquote, urlparse

import markdown
import nh3

ALLOWED_TAGS = {
    "p", "br", "hr",
    "strong", "em", "b", "i", "u", "s", "code", "pre",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li",
    "a", "blockquote",
    "table", "thead", "tbody", "tfoot", "tr", "th", "td",
}

ALLOWED_URL_SCHEMES = {"http", "https", "mailto"}

ALLOWED_ATTRIBUTES: Dict[str, Set[str]] = {
    "a": {"href", "title"},
    "th": {"align", "scope"},
    "td": {"align"},
}


def _filter_attributes(element: str, attribute: str, value: str) -> Optional[str]:
    # nh3 checks schemes on the raw value; "javascript%3A..." only shows after decoding
    if element == "a" and attribute == "href":
        scheme = urlparse(unquote(value)).scheme
        if scheme and scheme not in ALLOWED_URL_SCHEMES:
            return None
    return value


def sanitize_html(html: Optional[str]) -> str:
    if not html:
        return ""
    return nh3.clean(
        html,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        attribute_filter=_filter_attributes,
        url_schemes=ALLOWED_URL_SCHEMES,
        strip_comments=True,
    )


def render_markdown(text: Optional[str]) -> str:
    """Markdown to sanitized HTML; empty input renders as an empty string"""
    if not text:
        return ""
    html = markdown.markdown(text, extensions=["tables", "fenced_code"], output_format="html")
    return sanitize_html(html)
