import os

import pytest

from halo.proxy.models import RewriteContext, encode_target
from halo.proxy.transformer import ContentKind, classify, transform


@pytest.fixture
def ctx():
    return RewriteContext.from_url("/link", "https://example.com/static/app.css")


@pytest.mark.parametrize(
    "content_type,kind",
    [
        ("text/html; charset=utf-8", ContentKind.HTML),
        (None, ContentKind.HTML),
        ("", ContentKind.HTML),
        ("application/javascript", ContentKind.JAVASCRIPT),
        ("text/javascript; charset=utf-8", ContentKind.JAVASCRIPT),
        ("text/css", ContentKind.CSS),
        ("application/json", ContentKind.TEXT),
        ("text/plain", ContentKind.TEXT),
        ("application/xml", ContentKind.TEXT),
        ("image/png", ContentKind.BINARY),
        ("font/woff2", ContentKind.BINARY),
        ("application/octet-stream", ContentKind.BINARY),
    ],
)
def test_classify(content_type, kind):
    assert classify(content_type) == kind


def test_binary_untouched(ctx):
    body = os.urandom(4096) + b"url(/img/a.png)"
    assert transform(ContentKind.BINARY, body, ctx) is body


def test_text_untouched(ctx):
    body = b'{"next": "/api/page/2"}'
    assert transform(ContentKind.TEXT, body, ctx) == body


def test_css(ctx):
    result = transform(ContentKind.CSS, b"a{background:url(img/a.png)}", ctx)
    expected = "/link/" + encode_target("https://example.com/static/img/a.png")
    assert result == f'a{{background:url("{expected}")}}'.encode()


def test_javascript_keeps_charset(ctx):
    body = "fetch('/api'); // café".encode("latin-1")

    result = transform(ContentKind.JAVASCRIPT, body, ctx, "latin-1")

    assert result.endswith("// café".encode("latin-1"))
    assert ("/link/" + encode_target("https://example.com/api")).encode() in result


def test_unknown_charset_falls_back_to_utf8(ctx):
    result = transform(ContentKind.CSS, b"a{}", ctx, "no-such-charset")
    assert result == b"a{}"


def test_html(ctx):
    result = transform(ContentKind.HTML, b"<html><head></head><body></body></html>", ctx, "utf-8")
    assert b"<base href=" in result
