"""Router package exports."""

from . import health, srs

__all__ = [
    "health",
    "srs",
]
