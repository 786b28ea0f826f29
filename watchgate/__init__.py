"""Watch-progress tracking and activity unlock service."""

__version__ = "0.1.0"
