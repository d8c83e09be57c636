"""Headless browser screenshot service."""

__version__ = "0.1.0"
