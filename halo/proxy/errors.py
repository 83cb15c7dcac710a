from typing import Optional


class ProxyError(Exception):
    """Base class for failures that end a proxied request with an HTTP error."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTarget(ProxyError):
    """The target URL is malformed or cannot be parsed."""

    status_code = 400


class Unresolvable(ProxyError):
    """No explicit target and the referer chain did not yield one."""

    status_code = 404

    def __init__(self, method: str, path: str, reason: Optional[str] = None):
        super().__init__(f"Route {method}:{path} not found")
        self.method = method
        self.path = path
        self.reason = reason


class UpstreamFailure(ProxyError):
    """The target could not be reached or the transfer broke off."""

    status_code = 500


class TransformFailure(ProxyError):
    """Rewriting the upstream body raised unexpectedly."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
