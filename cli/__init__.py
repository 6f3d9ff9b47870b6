"""Command line entry points for the SPS30 exporter."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name in {"app", "monitor"}:
        return import_module(f"cli.{name}")
    raise AttributeError(name)

# ``cli.app`` and ``cli.monitor`` hold Typer instances named ``app``. They are
# not re-exported here so the module paths stay patchable in tests.

__all__ = []
