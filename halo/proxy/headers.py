"""
Header policy for both directions of the relay.

Outbound headers (client -> target) lose hop-by-hop and identifying entries and
gain browser-like defaults. Inbound headers (target -> client) lose the
security and CORS headers that would stop the rewritten page from working
when served from the proxy origin.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from halo.vars import DEFAULT_USER_AGENT

# Hop-by-hop headers (RFC 2616) and headers that identify the proxy or client
STRIPPED_OUTBOUND = frozenset(
    {
        "host",
        "connection",
        "keep-alive",
        "content-length",
        "accept-encoding",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "cf-ray",
        "cf-connecting-ip",
        "x-forwarded-for",
        "x-forwarded-host",
        "x-forwarded-proto",
        "x-real-ip",
        "sec-websocket-key",
        "sec-websocket-version",
        "sec-websocket-extensions",
    }
)

STRIPPED_INBOUND = frozenset(
    {
        "content-security-policy",
        "content-security-policy-report-only",
        "x-frame-options",
        "x-content-type-options",
        "strict-transport-security",
        "access-control-allow-origin",
        "access-control-allow-methods",
        "access-control-allow-headers",
        "access-control-allow-credentials",
        "access-control-expose-headers",
        "access-control-max-age",
        "content-encoding",
        "transfer-encoding",
        "content-length",
        "content-type",
        "connection",
        "keep-alive",
        "cross-origin-embedder-policy",
        "cross-origin-opener-policy",
        "cross-origin-resource-policy",
        "permissions-policy",
        "referrer-policy",
    }
)

OUTBOUND_DEFAULTS = {
    "user-agent": DEFAULT_USER_AGENT,
    "accept": "*/*",
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate",
    "dnt": "1",
    "connection": "keep-alive",
    "upgrade-insecure-requests": "1",
    "sec-fetch-dest": "document",
    "sec-fetch-mode": "navigate",
    "sec-fetch-site": "none",
    "sec-fetch-user": "?1",
    "cache-control": "no-cache",
    "pragma": "no-cache",
}

CORS_HEADERS = (
    ("access-control-allow-origin", "*"),
    ("access-control-allow-methods", "*"),
    ("access-control-allow-headers", "*"),
    ("access-control-expose-headers", "*"),
    ("x-content-type-options", "nosniff"),
)


@dataclass(frozen=True)
class HeaderPolicy:
    stripped_outbound: FrozenSet[str] = STRIPPED_OUTBOUND
    stripped_inbound: FrozenSet[str] = STRIPPED_INBOUND
    defaults: Mapping[str, str] = field(default_factory=lambda: dict(OUTBOUND_DEFAULTS))

    def outbound(self, inbound_headers: Mapping[str, str]) -> Dict[str, str]:
        """Headers to send upstream, keyed by lower-case name."""
        headers: Dict[str, str] = {}
        for name, value in inbound_headers.items():
            name_lower = name.lower()
            if name_lower in self.stripped_outbound or not value:
                continue
            headers[name_lower] = value

        for name, value in self.defaults.items():
            headers.setdefault(name, value)
        return headers

    def inbound(
        self,
        upstream_headers: Iterable[Tuple[str, str]],
        rewrite_location: Optional[Callable[[str], str]] = None,
    ) -> List[Tuple[str, str]]:
        """Headers to relay to the client, repeated names kept in order."""
        headers: List[Tuple[str, str]] = []
        for name, value in upstream_headers:
            name_lower = name.lower()
            if name_lower in self.stripped_inbound:
                continue
            if name_lower == "location" and rewrite_location is not None:
                value = rewrite_location(value)
            headers.append((name_lower, value))

        headers.extend(CORS_HEADERS)
        return headers


DEFAULT_POLICY = HeaderPolicy()
