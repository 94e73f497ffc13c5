"""Bundled storage providers."""

from .drime import DrimeProvider
from .local import LocalProvider

__all__ = [
    "DrimeProvider",
    "LocalProvider",
]
