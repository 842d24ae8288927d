import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "webrelay")

PROXY_HOST = os.environ.get("PROXY_HOST", "0.0.0.0")
PROXY_PORT = int(os.environ.get("PROXY_PORT", "8080"))
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "8000"))

# Upstream timeouts in seconds
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "300"))
PROXY_CONNECT_TIMEOUT = float(os.environ.get("PROXY_CONNECT_TIMEOUT", "10"))
PROXY_ALLOW_UNSAFE_CERT = (
    os.getenv("PROXY_ALLOW_UNSAFE_CERT", "false").lower() == "true"
)

GEOIP_ASN_DB = os.getenv("GEOIP_ASN_DB", "")
GEOIP_COUNTRY_DB = os.getenv("GEOIP_COUNTRY_DB", "")

METRICS_PATH = os.getenv("METRICS_PATH", "/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()
