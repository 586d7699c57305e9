import logging

logger = logging.getLogger("uvicorn.error")


def remove_cookie_domain(set_cookie: str) -> str:
    """
    Drop the Domain attribute from a Set-Cookie value.

    Without a Domain attribute the browser scopes the cookie to the host that
    served it, which is the proxy. The leading name=value pair stays first and
    the other attributes keep their order. This is a lenient split on ``;``
    rather than a cookie parser: values without a Domain attribute, or without
    a leading name=value segment, are returned unchanged.
    """
    segments = [segment.strip() for segment in set_cookie.split(";")]
    if not segments or not segments[0]:
        return set_cookie

    kept = [segments[0]]
    dropped = False
    for segment in segments[1:]:
        name = segment.partition("=")[0].strip()
        if name.lower() == "domain":
            dropped = True
            continue
        if segment:
            kept.append(segment)

    if not dropped:
        return set_cookie

    logger.debug(f"[Proxy] Removed Domain attribute from cookie {segments[0].partition('=')[0]!r}")
    return "; ".join(kept)
