"""Region extraction server for vg reference graphs."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tubemap-server")
except PackageNotFoundError:  # pragma: no cover - package metadata absent in dev mode
    __version__ = "0.0.0"

__all__ = ["__version__"]
