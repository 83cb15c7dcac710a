def shorten(text: str, limit: int = 200) -> str:
    """Clip long values (data-heavy URLs) before they reach a log line."""
    if text is None or len(text) <= limit:
        return text
    return f"{text[:limit]}...(+{len(text) - limit} chars)"
