"""
The rewrite/relay engine.

One ``ProxyEngine`` exists per configured path prefix; the named services
(HaloLight, HaloShell, ...) differ only in that prefix.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from halo.proxy.errors import ProxyError, TransformFailure
from halo.proxy.fetcher import UpstreamFetcher
from halo.proxy.headers import DEFAULT_POLICY, HeaderPolicy
from halo.proxy.models import ProxyRequest, RewriteContext
from halo.proxy.rewriter import rewrite_url
from halo.proxy.transformer import ContentKind, classify, transform
from halo.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from halo.utils.traced_requests import traced_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")


def facade_name(prefix: str) -> str:
    """``/light`` -> ``HaloLight``."""
    return "Halo" + prefix.strip("/").capitalize()


def assemble_response(
    response: Response, headers: List[Tuple[str, str]], content_type: str
) -> Response:
    """Attach relayed headers, keeping repeats such as Set-Cookie."""
    response.headers["content-type"] = content_type
    for name, value in headers:
        response.headers.append(name, value)
    return response


class ProxyEngine:
    def __init__(
        self,
        prefix: str,
        fetcher: Optional[UpstreamFetcher] = None,
        policy: HeaderPolicy = DEFAULT_POLICY,
    ):
        self.prefix = prefix
        self.name = facade_name(prefix)
        self.policy = policy
        self.fetcher = fetcher or UpstreamFetcher(policy=policy)

    async def handle(self, request: ProxyRequest, target_url: str) -> Response:
        """Fetch ``target_url``, rewrite the body for this prefix and relay it."""
        with traced_request(
            tracer,
            operation="proxy_request",
            start_message=f"[{self.name}] {request.method} {target_url}",
            extra_attrs={
                "proxy.prefix": self.prefix,
                "proxy.method": request.method,
                "proxy.target_url": target_url,
            },
        ) as span:
            try:
                upstream = await self.fetcher.fetch(
                    target_url, request.method, request.headers, request.body
                )
            except ProxyError as e:
                span.set_attribute("proxy.error", type(e).__name__)
                log_exception_with_details(
                    logger, f"[{self.name}] {target_url}", e, logging.WARNING
                )
                raise

            context = RewriteContext.from_url(self.prefix, upstream.url)
            kind = classify(upstream.content_type)
            span.set_attribute("proxy.status_code", upstream.status_code)
            span.set_attribute("proxy.content_kind", kind.value)

            headers = self.policy.inbound(
                upstream.headers,
                rewrite_location=lambda value: rewrite_url(
                    value, context, allow_relative=True
                ),
            )

            if kind == ContentKind.BINARY:
                response = StreamingResponse(
                    upstream.iter_bytes(),
                    status_code=upstream.status_code,
                    background=BackgroundTask(upstream.aclose),
                )
                return assemble_response(response, headers, upstream.content_type)

            try:
                body = await upstream.read()
            except ProxyError as e:
                span.set_attribute("proxy.error", type(e).__name__)
                log_exception_with_details(
                    logger, f"[{self.name}] {target_url}", e, logging.WARNING
                )
                raise
            finally:
                await upstream.aclose()

            # HEAD, 204 and 304 answers carry no body to rewrite
            if body and request.method != "HEAD":
                try:
                    body = transform(kind, body, context, upstream.charset)
                except Exception as e:
                    span.set_attribute("proxy.error", "transform_failed")
                    log_exception_with_details(logger, f"[{self.name}] Transform", e)
                    raise TransformFailure(format_exception_message(e), cause=e) from e

            response = Response(content=body, status_code=upstream.status_code)
            return assemble_response(response, headers, upstream.content_type)


def build_engines(
    prefixes: Iterable[str], fetcher: Optional[UpstreamFetcher] = None
) -> Dict[str, ProxyEngine]:
    fetcher = fetcher or UpstreamFetcher()
    return {prefix: ProxyEngine(prefix, fetcher) for prefix in prefixes}
