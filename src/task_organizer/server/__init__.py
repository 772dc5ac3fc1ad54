"""HTTP surface for the task organizer."""

from .api import create_app

__all__ = ["create_app"]
