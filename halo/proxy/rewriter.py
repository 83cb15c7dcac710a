"""
URL, CSS and JavaScript rewriting.

Every reference is turned into ``{prefix}/{percent-encoded absolute URL}``.
JavaScript handling is literal-string matching of common call sites, not a
parse; URLs assembled at runtime are left to the injected shim.
"""

import re
from typing import Optional
from urllib.parse import urljoin

from halo.proxy.models import RewriteContext

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")

CSS_URL_PATTERN = re.compile(
    r"""url\(\s*(?:"([^"]*)"|'([^']*)'|([^)'"\s]*))\s*\)""", re.IGNORECASE
)
CSS_IMPORT_PATTERN = re.compile(r"""(@import\s+)(["'])([^"']+)\2""", re.IGNORECASE)

JS_FETCH_PATTERN = re.compile(
    r"""(\bfetch\s*\(\s*)(["'])((?:https?://|/)[^"']*)\2""", re.IGNORECASE
)
JS_XHR_OPEN_PATTERN = re.compile(
    r"""(\.open\s*\(\s*(["'])(?:GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\2\s*,\s*)"""
    r"""(["'])((?:https?://|/)[^"']*)\3""",
    re.IGNORECASE,
)
JS_VERB_CALL_PATTERN = re.compile(
    r"""((?:\baxios(?:\.(?:get|post|put|delete|patch|head|request))?"""
    r"""|\.(?:get|post|put|delete|patch))\s*\(\s*)(["'])(https?://[^"']+)\2""",
    re.IGNORECASE,
)
JS_WEBSOCKET_PATTERN = re.compile(
    r"""(\bnew\s+WebSocket\s*\(\s*)(["'])(wss?://[^"']+)\2""", re.IGNORECASE
)
JS_LOCATION_PATTERN = re.compile(
    r"""(\b(?:(?:window|document)\.)?location(?:\.href)?\s*=\s*)(["'])(https?://[^"']+)\2""",
    re.IGNORECASE,
)


def absolute_url(
    value: str, context: RewriteContext, allow_relative: bool = False
) -> Optional[str]:
    """
    Absolute form of a reference, or None when it must stay as it is.

    Absolute, protocol-relative and root-relative references are always
    resolved. Bare relative references only when ``allow_relative`` is set;
    in HTML the ``<base>`` tag takes care of them.
    """
    value = value.strip()
    if not value or value.startswith("#"):
        return None
    prefix = context.proxy_prefix
    if value == prefix or value.startswith(prefix + "/"):
        return None

    lower = value.lower()
    if lower.startswith(("http://", "https://")):
        return value
    if value.startswith("//"):
        return f"{context.target_scheme}:{value}"
    if value.startswith("/"):
        return urljoin(context.target_url, value)
    if _SCHEME_RE.match(value):
        # data:, blob:, javascript:, mailto: and friends
        return None
    if allow_relative:
        return urljoin(context.target_url, value)
    return None


def rewrite_url(value: str, context: RewriteContext, allow_relative: bool = False) -> str:
    absolute = absolute_url(value, context, allow_relative)
    if absolute is None:
        return value
    return context.proxied(absolute)


def rewrite_css(css: str, context: RewriteContext) -> str:
    """Rewrite ``url(...)`` references and ``@import`` strings."""

    def replace_url(match: re.Match) -> str:
        value = next((g for g in match.groups() if g is not None), "")
        rewritten = rewrite_url(value, context, allow_relative=True)
        if rewritten == value:
            return match.group(0)
        return f'url("{rewritten}")'

    def replace_import(match: re.Match) -> str:
        lead, quote, value = match.groups()
        rewritten = rewrite_url(value, context, allow_relative=True)
        return f"{lead}{quote}{rewritten}{quote}"

    css = CSS_URL_PATTERN.sub(replace_url, css)
    return CSS_IMPORT_PATTERN.sub(replace_import, css)


def _websocket_to_http(url: str) -> str:
    return re.sub(r"^ws", "http", url, flags=re.IGNORECASE)


def rewrite_js(js: str, context: RewriteContext) -> str:
    """Best-effort rewrite of URL literals passed to well-known call sites."""

    def literal(lead: str, quote: str, url: str) -> str:
        return f"{lead}{quote}{rewrite_url(url, context)}{quote}"

    js = JS_FETCH_PATTERN.sub(lambda m: literal(m.group(1), m.group(2), m.group(3)), js)
    js = JS_XHR_OPEN_PATTERN.sub(
        lambda m: literal(m.group(1), m.group(3), m.group(4)), js
    )
    js = JS_VERB_CALL_PATTERN.sub(
        lambda m: literal(m.group(1), m.group(2), m.group(3)), js
    )
    js = JS_WEBSOCKET_PATTERN.sub(
        lambda m: literal(m.group(1), m.group(2), _websocket_to_http(m.group(3))), js
    )
    js = JS_LOCATION_PATTERN.sub(
        lambda m: literal(m.group(1), m.group(2), m.group(3)), js
    )
    return js
