"""OpenTelemetry tracing setup for the EDEN backend.

Call configure_observability() before the FastAPI app is created so the
Azure Monitor distro can instrument incoming requests and outgoing httpx
calls to the model providers.

Span attributes must never carry user messages, model output or deliverable
content. Use ids (session id, model name, level) and sizes instead.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from opentelemetry import trace


logger = logging.getLogger(__name__)

_ENV_ENABLE_OBSERVABILITY = "ENABLE_OBSERVABILITY"
_ENV_APP_INSIGHTS_CONN_STRING = "APPLICATIONINSIGHTS_CONNECTION_STRING"
_ENV_OTEL_SERVICE_NAME = "OTEL_SERVICE_NAME"

_DEFAULT_SERVICE_NAME = "eden-backend"

# Paths to exclude from automatic tracing (reduce noise for health checks)
EXCLUDED_URLS = "health,health/,favicon.ico"


def _is_observability_enabled() -> bool:
    """Return True if ENABLE_OBSERVABILITY is a truthy value."""
    value = os.getenv(_ENV_ENABLE_OBSERVABILITY, "false").lower()
    return value in {"true", "1", "yes", "on"}


@lru_cache
def configure_observability() -> bool:
    """Configure Azure Monitor export when enabled.

    Returns:
        True if an exporter was configured, False otherwise.

    Environment Variables:
        ENABLE_OBSERVABILITY: Set to "true" to enable (default: "false")
        APPLICATIONINSIGHTS_CONNECTION_STRING: Azure Monitor connection string
        OTEL_SERVICE_NAME: Service name for traces (default: "eden-backend")
    """
    if not _is_observability_enabled():
        logger.info(
            "Observability disabled. Set %s=true to enable Azure Monitor.",
            _ENV_ENABLE_OBSERVABILITY,
        )
        return False

    connection_string = os.getenv(_ENV_APP_INSIGHTS_CONN_STRING)
    if not connection_string:
        logger.warning(
            "Observability enabled but %s not set. Skipping Azure Monitor setup.",
            _ENV_APP_INSIGHTS_CONN_STRING,
        )
        return False

    try:
        # Optional extra: pip install eden-backend[azure]
        from azure.monitor.opentelemetry import configure_azure_monitor
    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry is not installed; "
            "install the 'azure' extra to export traces"
        )
        return False

    os.environ.setdefault(_ENV_OTEL_SERVICE_NAME, _DEFAULT_SERVICE_NAME)
    os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", EXCLUDED_URLS)
    configure_azure_monitor(connection_string=connection_string)
    logger.info(
        "Azure Monitor observability configured for service '%s'",
        os.environ[_ENV_OTEL_SERVICE_NAME],
    )
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Return an OpenTelemetry tracer.

    Without a configured SDK the API hands out a no-op tracer, so callers can
    always open spans unconditionally::

        tracer = get_tracer(__name__)
        with tracer.start_as_current_span("ollama.stream") as span:
            span.set_attribute("llm.model", model)
    """
    return trace.get_tracer(name)
