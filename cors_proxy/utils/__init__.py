from urllib.parse import urlsplit, urlunsplit


def mask_url_credentials(url: str) -> str:
    """Hide the password of a URL's userinfo so target URLs can be logged."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.password is None:
        return url
    userinfo, _, hostport = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:****@{hostport}"))
