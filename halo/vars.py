import os
import re

SERVICE_NAME = os.getenv("SERVICE_NAME", "lehalo")
HALO_ENV = os.getenv("HALO_ENV", "production").lower()
DEVELOPMENT_MODE = HALO_ENV == "development"

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = os.environ.get("PORT", "3000")


def _parse_prefixes(raw: str) -> list:
    prefixes = []
    for entry in raw.split(","):
        entry = entry.strip().rstrip("/")
        if not entry:
            continue
        if not entry.startswith("/"):
            entry = "/" + entry
        if entry not in prefixes:
            prefixes.append(entry)
    return prefixes


# Engines that rewrite and relay content, one per prefix
PROXY_PREFIXES = _parse_prefixes(
    os.getenv("PROXY_PREFIXES", "/light,/shell,/link,/mux")
)
# Prefixes that are reserved but answer 501
UNIMPLEMENTED_PREFIXES = _parse_prefixes(os.getenv("UNIMPLEMENTED_PREFIXES", "/wisp"))
# Path prefixes owned by static file serving; never resolved through the referer
STATIC_PREFIXES = [
    p.strip()
    for p in os.getenv("STATIC_PREFIXES", "/ui/,/assets/").split(",")
    if p.strip()
]

# Domain guessed for unguided relative paths; empty disables the guess
FALLBACK_DOMAIN = re.sub(
    r"^https?://", "", os.getenv("FALLBACK_DOMAIN", "").strip(), flags=re.IGNORECASE
).strip("/")

UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "30"))
UPSTREAM_RETRIES = int(os.getenv("UPSTREAM_RETRIES", "0"))
UPSTREAM_RETRY_BACKOFF = float(os.getenv("UPSTREAM_RETRY_BACKOFF", "0.5"))
UPSTREAM_VERIFY_TLS = os.getenv("UPSTREAM_VERIFY_TLS", "true").lower() == "true"

DEFAULT_USER_AGENT = os.getenv(
    "DEFAULT_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
