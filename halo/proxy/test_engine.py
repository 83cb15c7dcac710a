from unittest.mock import patch

import httpx
import pytest
from fastapi.responses import StreamingResponse

from halo.proxy.engine import ProxyEngine, build_engines, facade_name
from halo.proxy.errors import TransformFailure, UpstreamFailure
from halo.proxy.fetcher import UpstreamFetcher
from halo.proxy.models import ProxyRequest, encode_target


def _response(status=200, headers=None, content=b"", url="https://example.com/"):
    return httpx.Response(
        status,
        headers=headers or {},
        content=content,
        request=httpx.Request("GET", url),
    )


@pytest.fixture
def engine():
    return ProxyEngine("/light")


def _get(path="/light"):
    return ProxyRequest(method="GET", path=path)


def test_facade_names():
    assert facade_name("/light") == "HaloLight"
    assert facade_name("/mux") == "HaloMux"


def test_build_engines_share_fetcher():
    fetcher = UpstreamFetcher()
    engines = build_engines(["/light", "/shell"], fetcher)

    assert list(engines) == ["/light", "/shell"]
    assert engines["/shell"].name == "HaloShell"
    assert engines["/light"].fetcher is engines["/shell"].fetcher is fetcher


@pytest.mark.asyncio
async def test_html_is_rewritten_against_final_url(engine, mock_send):
    mock_send.return_value = _response(
        200,
        headers={"content-type": "text/html; charset=utf-8"},
        content=b"<html><head></head><body><img src='/logo.png'></body></html>",
        url="https://www.example.com/home/",
    )

    response = await engine.handle(_get(), "https://example.com/")

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/html; charset=utf-8"
    body = response.body.decode()
    assert "/light/" + encode_target("https://www.example.com/logo.png") in body
    assert '<base href="/light/' + encode_target("https://www.example.com/home/") + '/"' in body


@pytest.mark.asyncio
async def test_status_and_headers_relayed(engine, mock_send):
    mock_send.return_value = _response(
        404,
        headers=[
            ("content-type", "application/json"),
            ("content-security-policy", "default-src 'none'"),
            ("set-cookie", "a=1"),
            ("set-cookie", "b=2"),
        ],
        content=b'{"missing": true}',
    )

    response = await engine.handle(_get(), "https://example.com/api")

    assert response.status_code == 404
    assert response.body == b'{"missing": true}'
    assert "content-security-policy" not in response.headers
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers.getlist("set-cookie") == ["a=1", "b=2"]


@pytest.mark.asyncio
async def test_location_header_rewritten(engine, mock_send):
    mock_send.return_value = _response(
        301,
        headers={"content-type": "text/plain", "location": "/moved"},
        url="https://example.com/old",
    )

    response = await engine.handle(_get(), "https://example.com/old")

    assert response.headers["location"] == "/light/" + encode_target(
        "https://example.com/moved"
    )


@pytest.mark.asyncio
async def test_binary_is_streamed(engine, mock_send):
    payload = bytes(range(256)) * 8
    mock_send.return_value = _response(
        200, headers={"content-type": "image/png"}, content=payload
    )

    response = await engine.handle(_get(), "https://example.com/a.png")

    assert isinstance(response, StreamingResponse)
    chunks = [chunk async for chunk in response.body_iterator]
    assert b"".join(chunks) == payload
    assert response.headers["content-type"] == "image/png"
    await response.background()


@pytest.mark.asyncio
async def test_transform_failure(engine, mock_send):
    mock_send.return_value = _response(
        200, headers={"content-type": "text/css"}, content=b"a{}"
    )

    with patch("halo.proxy.engine.transform", side_effect=RuntimeError("boom")):
        with pytest.raises(TransformFailure) as exc_info:
            await engine.handle(_get(), "https://example.com/a.css")

    assert exc_info.value.message == "boom"
    assert isinstance(exc_info.value.cause, RuntimeError)


@pytest.mark.asyncio
async def test_upstream_failure_propagates(engine, mock_send):
    mock_send.side_effect = httpx.ConnectError("refused")

    with pytest.raises(UpstreamFailure):
        await engine.handle(_get(), "https://example.com/")


@pytest.mark.asyncio
async def test_empty_body_not_transformed(engine, mock_send):
    mock_send.return_value = _response(304, headers={"content-type": "text/html"})

    response = await engine.handle(_get(), "https://example.com/")

    assert response.status_code == 304
    assert response.body == b""


@pytest.mark.asyncio
async def test_relative_location_resolved_against_page(engine, mock_send):
    mock_send.return_value = _response(
        302,
        headers={"content-type": "text/plain", "location": "done"},
        url="https://example.com/account/login",
    )

    response = await engine.handle(_get(), "https://example.com/account/login")

    assert response.headers["location"] == "/light/" + encode_target(
        "https://example.com/account/done"
    )
