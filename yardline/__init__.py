"""Yardline: car yard chat intelligence."""

__version__ = "0.1.0"
