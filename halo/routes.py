import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from halo.models import EngineInfo, ErrorResponse, HealthResponse, IndexResponse
from halo.proxy.engine import build_engines, facade_name
from halo.proxy.errors import Unresolvable
from halo.proxy.models import ProxyRequest
from halo.proxy.resolver import UrlResolver
from halo.vars import (
    FALLBACK_DOMAIN,
    PROXY_PREFIXES,
    SERVICE_NAME,
    STATIC_PREFIXES,
    UNIMPLEMENTED_PREFIXES,
)

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
RESERVED_PATHS = {"/", "/health", "/metrics"}

engines = build_engines(PROXY_PREFIXES)
resolver = UrlResolver(PROXY_PREFIXES, FALLBACK_DOMAIN)


def _engine_infos():
    return [EngineInfo(name=e.name, prefix=e.prefix) for e in engines.values()]


@router.get("/")
async def index():
    return IndexResponse(
        service=SERVICE_NAME,
        engines=_engine_infos(),
        unimplemented=UNIMPLEMENTED_PREFIXES,
        usage="{prefix}?url=<target> or {prefix}/<percent-encoded target>",
    )


@router.get("/health")
async def health():
    return HealthResponse(service=SERVICE_NAME, engines=_engine_infos())


def _explicit_handler(prefix: str):
    engine = engines[prefix]

    async def proxy(request: Request):
        proxy_request = await ProxyRequest.from_request(request)
        _, target = resolver.resolve(proxy_request, prefix)
        if target is None:
            logger.info(f"[{engine.name}] No target in {proxy_request.path}, redirecting home")
            return RedirectResponse("/", status_code=302)
        return await engine.handle(proxy_request, target)

    return proxy


def _unimplemented_handler(prefix: str):
    body = ErrorResponse(
        error="WebSocket support coming soon", service=facade_name(prefix)
    ).body()

    async def unimplemented(request: Request):
        logger.info(f"[{facade_name(prefix)}] {request.method} {request.url.path} not implemented")
        return JSONResponse(status_code=501, content=body)

    return unimplemented


for _prefix in PROXY_PREFIXES:
    _handler = _explicit_handler(_prefix)
    _name = _prefix.strip("/").replace("/", "_")
    router.add_api_route(
        _prefix,
        _handler,
        methods=PROXY_METHODS,
        name=f"proxy_{_name}",
        include_in_schema=False,
    )
    router.add_api_route(
        _prefix + "/{rest:path}",
        _handler,
        methods=PROXY_METHODS,
        name=f"proxy_{_name}_path",
        include_in_schema=False,
    )

for _prefix in UNIMPLEMENTED_PREFIXES:
    if _prefix in engines:
        continue
    _handler = _unimplemented_handler(_prefix)
    _name = _prefix.strip("/").replace("/", "_")
    router.add_api_route(
        _prefix,
        _handler,
        methods=PROXY_METHODS,
        name=f"unimplemented_{_name}",
        include_in_schema=False,
    )
    router.add_api_route(
        _prefix + "/{rest:path}",
        _handler,
        methods=PROXY_METHODS,
        name=f"unimplemented_{_name}_path",
        include_in_schema=False,
    )


def _is_reserved(path: str) -> bool:
    if path in RESERVED_PATHS:
        return True
    return any(path.startswith(p) for p in STATIC_PREFIXES)


def register_catch_all(target_router: APIRouter) -> None:
    """
    Relative requests issued by proxied pages land here. Registered after every
    other route, including ones the application adds itself.
    """

    async def relative(request: Request):
        proxy_request = await ProxyRequest.from_request(request)
        if _is_reserved(request.url.path):
            raise Unresolvable(proxy_request.method, proxy_request.path_with_query)
        prefix, target = resolver.resolve(proxy_request)
        return await engines[prefix].handle(proxy_request, target)

    target_router.add_api_route(
        "/{full_path:path}",
        relative,
        methods=PROXY_METHODS,
        name="relative",
        include_in_schema=False,
    )
