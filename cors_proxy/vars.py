import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "cors-proxy")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8080"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

PROXY_BASE_PATH = os.environ.get("PROXY_BASE_PATH", "/proxy").rstrip("/")
PROXY_ALLOWED_METHODS = [
    m.strip().upper()
    for m in os.environ.get(
        "PROXY_ALLOWED_METHODS", "GET,POST,PUT,DELETE,PATCH,HEAD,OPTIONS"
    ).split(",")
    if m.strip()
]

# Transport timeouts of the shared outbound client, in seconds
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "300"))
PROXY_CONNECT_TIMEOUT = float(os.environ.get("PROXY_CONNECT_TIMEOUT", "10"))
PROXY_MAX_CONNECTIONS = int(os.environ.get("PROXY_MAX_CONNECTIONS", "100"))
PROXY_VERIFY_TLS = os.getenv("PROXY_VERIFY_TLS", "true").lower() == "true"

CORS_ALLOW_ORIGINS = [
    o.strip() for o in os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]
CORS_ALLOW_CREDENTIALS = (
    os.getenv("CORS_ALLOW_CREDENTIALS", "false").lower() == "true"
)
CORS_EXPOSE_HEADERS = [
    h.strip() for h in os.environ.get("CORS_EXPOSE_HEADERS", "").split(",") if h.strip()
]

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
