"""Fatal error types surfaced to the process runtime."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid startup options; reported before any work begins."""


class DeviceInitializationError(RuntimeError):
    """The sensor could not be opened, reset or put into measurement mode."""


class ReaderThreadFailure(RuntimeError):
    """The reader thread terminated with an unexpected exception."""
