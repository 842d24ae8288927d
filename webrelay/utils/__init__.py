from typing import Optional

# Header values that must never reach the logs verbatim
SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
}


def mask_value(value: Optional[str], keep: int = 4) -> str:
    if not value:
        return ""
    return f"{value[:keep]}****"


def loggable_header(name: str, value: str) -> str:
    """Render a header for debug logs, masking credentials and cookies."""
    if name.lower() in SENSITIVE_HEADERS:
        value = mask_value(value)
    return f"{name}: {value}"
