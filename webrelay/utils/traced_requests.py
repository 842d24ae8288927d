import logging
from typing import Dict, Optional
from contextlib import contextmanager

from opentelemetry.trace import Tracer

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    start_message: str,
    client: Optional[str] = None,
    extra_attrs: Optional[Dict] = None,
):
    """Open a span for one proxied or dispatched exchange and log its start at debug level."""
    with tracer.start_as_current_span(operation) as span:
        if client:
            span.set_attribute("client.address", client)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.debug(start_message)
        yield span
