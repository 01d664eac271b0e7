"""Web backend for the ModelIt template search and structure modeling server."""

from importlib.metadata import version, PackageNotFoundError

__all__ = ["__version__"]

try:
    __version__ = version("modelit-server")
except PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.1.0"
