# hlsrelay/errors.py


class ProxyError(Exception):
    """Base for failures that map onto an HTTP status for the client."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidUrl(ProxyError):
    status_code = 400


class HeaderParseFailure(ProxyError):
    # never reaches the client, callers fall back to no overrides
    status_code = 400


class TooManyRedirects(ProxyError):
    status_code = 502


class UpstreamNetworkFailure(ProxyError):
    status_code = 502


class UpstreamTimeout(ProxyError):
    status_code = 504


class InternalFailure(ProxyError):
    status_code = 500
