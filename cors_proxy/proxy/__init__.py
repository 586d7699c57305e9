from .cookies import remove_cookie_domain
from .errors import (
    ProxyError,
    MissingTargetError,
    InvalidTargetError,
    UpstreamTransportError,
    UnexpectedProxyError,
)
from .target import (
    TARGET_URL_PARAM,
    PRESERVE_COOKIE_DOMAIN_PARAM,
    TargetDescriptor,
    ProxyOptions,
    resolve_target,
    parse_proxy_options,
)

__all__ = [
    "remove_cookie_domain",
    "ProxyError",
    "MissingTargetError",
    "InvalidTargetError",
    "UpstreamTransportError",
    "UnexpectedProxyError",
    "TARGET_URL_PARAM",
    "PRESERVE_COOKIE_DOMAIN_PARAM",
    "TargetDescriptor",
    "ProxyOptions",
    "resolve_target",
    "parse_proxy_options",
]
