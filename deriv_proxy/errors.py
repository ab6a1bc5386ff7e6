"""
Error taxonomy for the proxy

Every error carries the HTTP status it maps to when it surfaces through the
HTTP endpoint layer.
"""


class ProxyError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(ProxyError):
    """Missing or malformed request parameters"""
    status_code = 400


class AuthError(ProxyError):
    """Unknown or missing session"""
    status_code = 401


class UpstreamUnavailable(ProxyError):
    """No ready, authorized upstream connection for the session"""
    status_code = 503


class SendFailure(ProxyError):
    """Writing to the upstream socket raised"""
    status_code = 502


class RequestTimeout(ProxyError):
    """The upstream did not answer a trade request in time"""
    status_code = 504


class UpstreamProtocolError(ProxyError):
    """Malformed upstream payload; dropped, never reaches an HTTP caller"""
    status_code = 502
