"""Entry point for running the proxy directly."""

import uvicorn

from cors_proxy.vars import HOST, LOG_LEVEL, PORT


def main():
    """Run the proxy server."""
    uvicorn.run(
        "cors_proxy.server:app",
        host=HOST,
        port=PORT,
        log_level=LOG_LEVEL,
    )


if __name__ == "__main__":
    main()
