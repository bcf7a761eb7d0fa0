import logging
import os
import opentelemetry.trace
from azure.monitor.opentelemetry import configure_azure_monitor

# Configure Azure Monitor (this automatically sets up connection to Application Insights)
# Only configure if running in Azure (determined by FUNCTIONS_WORKER_RUNTIME environment variable)
if os.environ.get("FUNCTIONS_WORKER_RUNTIME"):
    try:
        configure_azure_monitor()
        logging.info("Azure Monitor OpenTelemetry configured successfully")
    except Exception as e:
        logging.error(f"Error configuring Azure Monitor: {str(e)}")

# Tracer shared by crud, services and routes
tracer = opentelemetry.trace.get_tracer("audit_api")

logger = logging.getLogger("audit_api")

_level_name = os.environ.get("AUDIT_LOG_LEVEL", "INFO").upper()
_level = getattr(logging, _level_name, logging.INFO)
logger.setLevel(_level)

if not logger.handlers:
    # Console handler for local development and Azure Functions console
    console_handler = logging.StreamHandler()
    console_handler.setLevel(_level)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)


def get_child_logger(name):
    """Get a child logger with the given name."""
    return logger.getChild(name)


def mark_span_error(span, exc, status_code=None):
    """Flag the span as failed with the exception type and optional HTTP status."""
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(exc).__name__)
    if status_code is not None:
        span.set_attribute("error.status_code", status_code)
