from halo.proxy.engine import ProxyEngine, build_engines
from halo.proxy.errors import (
    InvalidTarget,
    ProxyError,
    TransformFailure,
    Unresolvable,
    UpstreamFailure,
)
from halo.proxy.models import ProxyRequest, RewriteContext
from halo.proxy.resolver import UrlResolver

__all__ = [
    "ProxyEngine",
    "build_engines",
    "ProxyError",
    "InvalidTarget",
    "Unresolvable",
    "UpstreamFailure",
    "TransformFailure",
    "ProxyRequest",
    "RewriteContext",
    "UrlResolver",
]
