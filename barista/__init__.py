"""Barista Café admin core: permission model, sessions and live notifications."""

__version__ = "1.0.0"
