from urllib.parse import unquote

import pytest
from bs4 import BeautifulSoup

from halo.proxy.html_rewriter import rewrite_html
from halo.proxy.models import RewriteContext, encode_target
from halo.proxy.shim import SHIM_MARKER

PAGE = """<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-Security-Policy" content="default-src 'self'">
<meta http-equiv="X-Frame-Options" content="DENY">
<meta http-equiv="Content-Type" content="text/html; charset=utf-8">
<title>Docs</title>
<link rel="stylesheet" href="/css/site.css" integrity="sha384-abc" crossorigin="anonymous">
<style>body { background: url(/img/bg.png); }</style>
</head>
<body>
<a id="abs" href="https://other.example/page">other</a>
<a id="rel" href="relative/page.html">relative</a>
<a id="frag" href="#top">top</a>
<img src="//cdn.example.com/i.png">
<form action="/submit"></form>
<iframe src="https://frame.example/" csp="script-src 'none'"></iframe>
<div id="styled" style="background: url('/img/d.png')"></div>
<script nonce="abc123">fetch('/api/data');</script>
</body>
</html>
"""


@pytest.fixture
def ctx():
    return RewriteContext.from_url("/light", "https://example.com/docs/page.html")


def proxied(url):
    return "/light/" + encode_target(url)


@pytest.fixture
def rewritten(ctx):
    return rewrite_html(PAGE.encode("utf-8"), ctx, "utf-8")


@pytest.fixture
def soup(rewritten):
    return BeautifulSoup(rewritten, "html.parser")


def test_doctype_stays_first(rewritten):
    assert rewritten.startswith(b"<!DOCTYPE html>")


def test_blocking_meta_removed(soup):
    equivs = [m.get("http-equiv", "").lower() for m in soup.find_all("meta")]
    assert "content-security-policy" not in equivs
    assert "x-frame-options" not in equivs
    assert "content-type" in equivs


def test_url_attributes(soup):
    assert soup.find("link")["href"] == proxied("https://example.com/css/site.css")
    assert soup.find(id="abs")["href"] == proxied("https://other.example/page")
    assert soup.find("img")["src"] == proxied("https://cdn.example.com/i.png")
    assert soup.find("form")["action"] == proxied("https://example.com/submit")
    assert soup.find("iframe")["src"] == proxied("https://frame.example/")


def test_relative_and_fragment_left_for_base(soup):
    assert soup.find(id="rel")["href"] == "relative/page.html"
    assert soup.find(id="frag")["href"] == "#top"


def test_integrity_dropped_on_rewritten_tags(soup):
    assert not soup.find("link").has_attr("integrity")


def test_iframe_csp_and_script_nonce_removed(soup):
    assert not soup.find("iframe").has_attr("csp")
    assert not any(s.has_attr("nonce") for s in soup.find_all("script"))


def test_inline_css(soup):
    assert proxied("https://example.com/img/bg.png") in soup.find("style").string
    assert proxied("https://example.com/img/d.png") in soup.find(id="styled")["style"]


def test_inline_script(soup):
    page_script = [s for s in soup.find_all("script") if not s.has_attr(SHIM_MARKER)][0]
    assert page_script.string == f"fetch('{proxied('https://example.com/api/data')}');"


def test_base_tag_first_in_head(soup, ctx):
    first = soup.head.find(True)
    assert first.name == "base"
    assert first["href"] == ctx.base_href
    assert len(soup.find_all("base")) == 1


def test_shim_injected_once_in_head(soup):
    shims = soup.find_all("script", attrs={SHIM_MARKER: True})
    assert len(shims) == 1
    assert shims[0].parent.name == "head"
    assert '"/light"' in shims[0].string
    assert '"https://example.com/docs/"' in shims[0].string


def test_no_nested_prefix(soup):
    for tag in soup.find_all(True):
        for attr in ("href", "src", "action"):
            value = tag.get(attr)
            if isinstance(value, str) and value.startswith("/light/"):
                inner = unquote(value[len("/light/"):])
                assert not inner.startswith("/light")
                assert inner.startswith("http")


def test_second_pass_does_not_prefix_again(ctx, rewritten):
    again = BeautifulSoup(rewrite_html(rewritten, ctx, "utf-8"), "html.parser")
    assert again.find("link")["href"] == proxied("https://example.com/css/site.css")


def test_existing_base_replaced(ctx):
    body = b'<html><head><base href="/static/"></head><body></body></html>'

    soup = BeautifulSoup(rewrite_html(body, ctx, "utf-8"), "html.parser")

    bases = soup.find_all("base")
    assert len(bases) == 1
    assert bases[0]["href"] == ctx.base_href


def test_fragment_without_head(ctx):
    result = rewrite_html(b"<p>hi <a href='/x'>x</a></p>", ctx, "utf-8")

    assert result.startswith(b"<base ")
    soup = BeautifulSoup(result, "html.parser")
    assert soup.find("script", attrs={SHIM_MARKER: True}) is not None
    assert soup.find("a")["href"] == proxied("https://example.com/x")


def test_body_without_head_gets_shim_before_body(ctx):
    result = rewrite_html(b"<html><body><p>x</p></body></html>", ctx, "utf-8")

    soup = BeautifulSoup(result, "html.parser")
    shim = soup.find("script", attrs={SHIM_MARKER: True})
    assert shim.find_next_sibling("body") is not None


def test_keeps_declared_encoding(ctx):
    body = (
        '<html><head><meta charset="iso-8859-1"></head><body>café</body></html>'
    ).encode("iso-8859-1")

    result = rewrite_html(body, ctx, "iso-8859-1")

    assert "café".encode("iso-8859-1") in result
    assert b'charset="iso-8859-1"' in result
