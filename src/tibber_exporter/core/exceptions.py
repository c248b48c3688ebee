"""Custom exception hierarchy for tibber-exporter."""

from typing import Any


class ExporterError(Exception):
    """Base exception for all tibber-exporter errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(ExporterError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class TransientError(ExporterError):
    """A failure that is expected to resolve on its own.

    Network failures, timeouts, HTTP 429 and 5xx responses.

    Policy: retried by RetryPolicy up to its attempt budget, then surfaced.

    Context keys:
        url (str): the endpoint that failed, when applicable
        status_code (int | None): HTTP status code if applicable
    """


class FatalError(ExporterError):
    """A structural or configuration problem that retrying cannot fix.

    Malformed responses, invalid credentials, schema problems, rejected rows.

    Policy: raise immediately, never retried.

    Context keys:
        reason (str): short machine-readable cause
    """


class StorageError(ExporterError):
    """Persisting the run state failed.

    Policy: raise immediately. The run is reported as failed even when every
    warehouse write succeeded; the next run may re-export those prices.

    Context keys:
        operation (str): "write", "get_configmap", "replace_configmap", etc.
        target (str): the file path or ConfigMap name involved
    """
