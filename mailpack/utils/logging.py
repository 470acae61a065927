"""
Logging configuration.

On Cloud Run, logs go to Google Cloud Logging. Locally, logs are written to
stdout and any ``extra={"json_fields": {...}}`` is appended as JSON.
"""

import json
import logging
import os
import sys

# Flag to track if logging is already configured
_logging_configured = False


class LocalFormatter(logging.Formatter):
    """Custom formatter that displays json_fields from extra dict."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        json_fields = getattr(record, "json_fields", None)
        if json_fields:
            fields_str = json.dumps(json_fields, indent=2, default=str)
            message = f"{message}\n{fields_str}"

        return message


def setup_logging(service_name: str = "mailpack", level: int | str | None = None):
    """
    Configure logging once per process.

    Uses google-cloud-logging when running on Cloud Run (K_SERVICE is set),
    standard Python logging with a simple format otherwise.

    Args:
        service_name: Name of the service for log identification
        level: Log level (defaults to LOG_LEVEL env var, then INFO)
    """
    global _logging_configured

    if _logging_configured:
        return

    level = level or os.getenv("LOG_LEVEL", "INFO")

    if os.getenv("K_SERVICE"):
        _setup_cloud_logging(service_name, level)
    else:
        _setup_local_logging(level)

    _logging_configured = True


def _setup_cloud_logging(service_name: str, level: int | str):
    """Configure logging for Cloud Run using google-cloud-logging."""
    try:
        import google.cloud.logging

        client = google.cloud.logging.Client()
        client.setup_logging(log_level=logging.getLevelName(level))

        logging.info("Cloud Logging configured for service: %s", service_name)
    except Exception as e:
        # Fall back to local logging if Cloud Logging setup fails
        _setup_local_logging(level)
        logging.warning("Failed to setup Cloud Logging, using local logging: %s", e)


def _setup_local_logging(level: int | str):
    """Configure logging for local development."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        LocalFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
