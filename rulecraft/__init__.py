"""Cursor rule generation service with structured event streaming."""

__version__ = "0.1.0"
