"""
Target URL resolution for proxied requests.

Explicit requests carry the destination themselves, either as one
percent-encoded path segment under the proxy prefix or as a ``url``/``u``
query parameter. Implicit requests are relative paths a proxied page asked for
without going through the prefix; their destination is rebuilt from the
``Referer`` of that page.
"""

import logging
from typing import Iterable, Optional, Tuple
from urllib.parse import parse_qs, unquote, urljoin, urlsplit

from halo.proxy.errors import InvalidTarget, Unresolvable
from halo.proxy.models import ProxyRequest, directory_of

logger = logging.getLogger("uvicorn.error")

TARGET_QUERY_KEYS = ("url", "u")

UNRESOLVED_HINT = (
    "This might be a relative path from a proxied site. Make sure you accessed "
    "it through the proxy by clicking a link from a proxied page."
)


def decode_segment(raw: str) -> str:
    """Percent-decode ``raw``; malformed escapes leave the raw value in place."""
    try:
        return unquote(raw, errors="strict")
    except UnicodeDecodeError:
        logger.debug(f"[Resolver] Could not decode segment, using raw value: {raw}")
        return raw


def _looks_absolute(value: str) -> bool:
    return value.startswith("//") or value.lower().startswith(("http://", "https://"))


def normalize_target(value: str) -> str:
    """Complete the scheme of a decoded target and validate it."""
    url = value.strip()
    if url.startswith("//"):
        url = "https:" + url
    elif not url.lower().startswith(("http://", "https://")):
        url = "https://" + url

    try:
        parts = urlsplit(url)
        parts.port  # raises on a malformed port
    except ValueError as e:
        raise InvalidTarget(f"Invalid URL: {e}")

    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise InvalidTarget(f"Invalid URL: {value}")
    if any(ch.isspace() for ch in parts.netloc):
        raise InvalidTarget(f"Invalid URL: {value}")
    return url


def base_tag_directory(url: str) -> str:
    """
    Origin plus directory the browser resolved against under the injected
    ``<base>``.

    The base href always ends in ``/``, so the real directory of the page is
    lost. A final segment without a dot is taken to be a directory (``/app``),
    anything else is a file whose directory is used.
    """
    parts = urlsplit(url)
    path = parts.path or "/"
    last = path.rpartition("/")[2]
    if last and "." not in last:
        path += "/"
    return f"{parts.scheme}://{parts.netloc}{directory_of(path)}"


def query_target(query: str) -> Optional[str]:
    params = parse_qs(query, keep_blank_values=True)
    for key in TARGET_QUERY_KEYS:
        for value in params.get(key, []):
            if value:
                return value
    return None


def _append_query(url: str, query: str) -> str:
    if not query:
        return url
    return f"{url}&{query}" if "?" in url else f"{url}?{query}"


def target_from_segment(segment: str, query: str = "") -> str:
    """
    Absolute target for the path segment that follows a proxy prefix.

    An encoded URL followed by a literal ``/`` and more path is what a browser
    builds when it resolves a bare relative reference against the injected
    ``<base href="{prefix}/{encoded}/">``. The trailing part is then resolved
    against the encoded URL instead of being glued onto it.
    """
    head, sep, tail = segment.partition("/")
    if sep:
        decoded_head = decode_segment(head)
        if _looks_absolute(decoded_head):
            base = normalize_target(decoded_head)
            if not tail:
                # "?page=2" resolved against the base replaces the page query
                return urljoin(base, "?" + query) if query else base
            relative = f"{tail}?{query}" if query else tail
            return urljoin(base_tag_directory(base), relative)

    return _append_query(normalize_target(decode_segment(segment)), query)


class UrlResolver:
    def __init__(self, prefixes: Iterable[str], fallback_domain: str = ""):
        self.prefixes = list(prefixes)
        self.fallback_domain = fallback_domain

    def explicit(self, request: ProxyRequest, prefix: str) -> Optional[str]:
        """
        Target carried by a request on ``prefix``.

        Returns None when the request names no target at all, which the route
        answers with a redirect home rather than an error.
        """
        rest = request.path[len(prefix):] if request.path.startswith(prefix) else ""
        if rest.startswith("/"):
            segment = rest[1:]
            if not segment:
                return None
            return target_from_segment(segment, request.query)

        value = query_target(request.query)
        if not value:
            return None
        return normalize_target(decode_segment(value))

    def previous_target(self, referer: str) -> Optional[Tuple[str, str]]:
        """Prefix and absolute target of the proxied page named by ``referer``."""
        try:
            parts = urlsplit(referer)
        except ValueError:
            return None

        for prefix in self.prefixes:
            try:
                if parts.path.startswith(prefix + "/"):
                    segment = parts.path[len(prefix) + 1:]
                    if segment:
                        return prefix, target_from_segment(segment)
                elif parts.path == prefix:
                    value = query_target(parts.query)
                    if value:
                        return prefix, normalize_target(decode_segment(value))
            except InvalidTarget:
                logger.debug(f"[Resolver] Referer does not carry a usable target: {referer}")
                return None
        return None

    def implicit(self, request: ProxyRequest) -> Tuple[str, str]:
        """Rebuild the target of a relative request from its referer."""
        relative = "/" + request.path_with_query.lstrip("/")

        if request.referer:
            found = self.previous_target(request.referer)
            if found:
                prefix, previous = found
                target = urljoin(previous, relative)
                logger.debug(f"[Resolver] {relative} resolved via referer to {target}")
                return prefix, target

        if self.fallback_domain and self.prefixes:
            try:
                target = normalize_target(f"https://{self.fallback_domain}{relative}")
            except InvalidTarget:
                pass
            else:
                logger.info(f"[Resolver] Guessed {target} for unguided path {relative}")
                return self.prefixes[0], target

        raise Unresolvable(request.method, request.path_with_query, UNRESOLVED_HINT)

    def resolve(
        self, request: ProxyRequest, prefix: Optional[str] = None
    ) -> Tuple[str, Optional[str]]:
        """Explicit resolution on a prefix route, implicit on the catch-all."""
        if prefix is not None:
            return prefix, self.explicit(request, prefix)
        return self.implicit(request)
