from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote, urlsplit

from fastapi import Request

BODYLESS_METHODS = {"GET", "HEAD", "OPTIONS"}


def encode_target(url: str) -> str:
    """Percent-encode a whole URL so it fits in one path segment."""
    return quote(url, safe="")


def directory_of(path: str) -> str:
    """Directory portion of a URL path: everything up to the last ``/``."""
    if not path:
        return "/"
    head, sep, _ = path.rpartition("/")
    return head + sep if sep else "/"


@dataclass
class ProxyRequest:
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    path: str = "/"
    query: str = ""
    referer: Optional[str] = None

    @property
    def path_with_query(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path

    @classmethod
    async def from_request(cls, request: Request) -> "ProxyRequest":
        headers: Dict[str, str] = {}
        # last value wins for repeated names
        for name, value in request.headers.items():
            headers[name.lower()] = value

        method = request.method.upper()
        body = None
        if method not in BODYLESS_METHODS:
            body = await request.body()

        raw_path = request.scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1").split("?", 1)[0]
        else:
            path = quote(request.url.path, safe="/%:@!$&'()*+,;=")

        return cls(
            method=method,
            headers=headers,
            body=body,
            path=path,
            query=request.url.query,
            referer=headers.get("referer") or headers.get("referrer"),
        )


@dataclass(frozen=True)
class RewriteContext:
    proxy_prefix: str
    target_url: str
    target_origin: str
    target_base_path: str
    target_scheme: str = "https"

    @property
    def base_url(self) -> str:
        return self.target_origin + self.target_base_path

    @property
    def base_href(self) -> str:
        return f"{self.proxy_prefix}/{encode_target(self.target_url)}/"

    def proxied(self, absolute_url: str) -> str:
        return f"{self.proxy_prefix}/{encode_target(absolute_url)}"

    @classmethod
    def from_url(cls, proxy_prefix: str, target_url: str) -> "RewriteContext":
        parts = urlsplit(target_url)
        scheme = parts.scheme or "https"
        return cls(
            proxy_prefix=proxy_prefix,
            target_url=target_url,
            target_origin=f"{scheme}://{parts.netloc}",
            target_base_path=directory_of(parts.path),
            target_scheme=scheme,
        )
