"""
HTML rewriting over a parsed document tree.

Steps run in a fixed order so the output is reproducible: strip blocking
policies, rewrite URL attributes, inline CSS, inline scripts, inject the
runtime shim, then set the ``<base>`` tag.
"""

import logging
from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import Doctype

from halo.proxy.models import RewriteContext
from halo.proxy.rewriter import rewrite_css, rewrite_js, rewrite_url
from halo.proxy.shim import SHIM_MARKER, render_shim

logger = logging.getLogger("uvicorn.error")

URL_ATTRIBUTES = (
    "href",
    "src",
    "action",
    "cite",
    "data",
    "formaction",
    "poster",
    "background",
)

BLOCKING_META = {
    "content-security-policy",
    "content-security-policy-report-only",
    "x-frame-options",
    "referrer-policy",
}


def _replace_text(tag, text: str) -> None:
    # keep the string class so script/style content stays unescaped
    current = tag.string
    current.replace_with(type(current)(text))


def _document_start(soup: BeautifulSoup) -> int:
    for index, node in enumerate(soup.contents):
        if isinstance(node, Doctype):
            return index + 1
    return 0


def strip_blocking_policies(soup: BeautifulSoup) -> None:
    for meta in soup.find_all("meta"):
        http_equiv = meta.get("http-equiv")
        if isinstance(http_equiv, str) and http_equiv.strip().lower() in BLOCKING_META:
            meta.decompose()
    for frame in soup.find_all("iframe", attrs={"csp": True}):
        del frame["csp"]
    for script in soup.find_all("script", attrs={"nonce": True}):
        del script["nonce"]


def rewrite_attributes(soup: BeautifulSoup, context: RewriteContext) -> int:
    count = 0
    for tag in soup.find_all(True):
        changed = False
        for attr in URL_ATTRIBUTES:
            value = tag.get(attr)
            if not isinstance(value, str):
                continue
            rewritten = rewrite_url(value, context)
            if rewritten != value:
                tag[attr] = rewritten
                changed = True
                count += 1
        # the digest no longer matches a rewritten body
        if changed and tag.has_attr("integrity"):
            del tag["integrity"]
    return count


def rewrite_inline_css(soup: BeautifulSoup, context: RewriteContext) -> None:
    for style in soup.find_all("style"):
        if style.string:
            _replace_text(style, rewrite_css(str(style.string), context))
    for tag in soup.find_all(attrs={"style": True}):
        value = tag["style"]
        if isinstance(value, str):
            tag["style"] = rewrite_css(value, context)


def rewrite_inline_scripts(soup: BeautifulSoup, context: RewriteContext) -> None:
    for script in soup.find_all("script"):
        if script.string:
            _replace_text(script, rewrite_js(str(script.string), context))


def inject_shim(soup: BeautifulSoup, context: RewriteContext) -> None:
    shim = soup.new_tag("script")
    shim[SHIM_MARKER] = ""
    shim.string = render_shim(context)

    if soup.head is not None:
        soup.head.append(shim)
    elif soup.body is not None:
        soup.body.insert_before(shim)
    else:
        soup.insert(_document_start(soup), shim)


def set_base(soup: BeautifulSoup, context: RewriteContext) -> None:
    href = context.base_href
    existing = soup.find_all("base")
    if existing:
        for base in existing:
            base["href"] = href
        return

    base = soup.new_tag("base", href=href)
    if soup.head is not None:
        soup.head.insert(0, base)
    else:
        soup.insert(_document_start(soup), base)


def rewrite_html(body: bytes, context: RewriteContext, charset: Optional[str] = None) -> bytes:
    """Rewrite an HTML document and serialise it in the encoding it arrived in."""
    soup = BeautifulSoup(body, "html.parser", from_encoding=charset)

    strip_blocking_policies(soup)
    count = rewrite_attributes(soup, context)
    rewrite_inline_css(soup, context)
    rewrite_inline_scripts(soup, context)
    inject_shim(soup, context)
    set_base(soup, context)

    encoding = soup.original_encoding or "utf-8"
    if encoding.lower() in ("ascii", "us-ascii"):
        encoding = "utf-8"
    logger.debug(
        f"[HTML] Rewrote {count} attribute references for {context.target_url} ({encoding})"
    )
    return soup.encode(encoding)
