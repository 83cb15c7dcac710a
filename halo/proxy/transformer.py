from enum import Enum
from typing import Optional

from halo.proxy.html_rewriter import rewrite_html
from halo.proxy.models import RewriteContext
from halo.proxy.rewriter import rewrite_css, rewrite_js

TEXT_MARKERS = (
    "text/",
    "application/json",
    "application/javascript",
    "application/x-javascript",
    "application/ecmascript",
    "application/xml",
    "application/xhtml",
)


class ContentKind(str, Enum):
    HTML = "html"
    JAVASCRIPT = "javascript"
    CSS = "css"
    TEXT = "text"
    BINARY = "binary"


def classify(content_type: Optional[str]) -> ContentKind:
    """Pick the transform for a response by its Content-Type."""
    content_type = (content_type or "text/html").lower()
    if not any(marker in content_type for marker in TEXT_MARKERS):
        return ContentKind.BINARY
    if "text/html" in content_type:
        return ContentKind.HTML
    if "javascript" in content_type or "ecmascript" in content_type:
        return ContentKind.JAVASCRIPT
    if "css" in content_type:
        return ContentKind.CSS
    return ContentKind.TEXT


def transform(
    kind: ContentKind,
    body: bytes,
    context: RewriteContext,
    charset: Optional[str] = None,
) -> bytes:
    """Apply the rewrite for ``kind``; text and binary bodies come back unchanged."""
    if kind == ContentKind.HTML:
        return rewrite_html(body, context, charset)
    if kind in (ContentKind.JAVASCRIPT, ContentKind.CSS):
        encoding = charset or "utf-8"
        try:
            text = body.decode(encoding, errors="replace")
        except LookupError:
            encoding = "utf-8"
            text = body.decode(encoding, errors="replace")
        if kind == ContentKind.CSS:
            text = rewrite_css(text, context)
        else:
            text = rewrite_js(text, context)
        return text.encode(encoding, errors="replace")
    return body
