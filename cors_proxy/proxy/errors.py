class ProxyError(Exception):
    """Base class for failures reported to the caller as a plain-text response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingTargetError(ProxyError):
    status_code = 400


class InvalidTargetError(ProxyError):
    status_code = 400


class UpstreamTransportError(ProxyError):
    """DNS, connect, TLS, timeout or protocol failure talking to the target."""

    status_code = 502


class UnexpectedProxyError(ProxyError):
    status_code = 500
