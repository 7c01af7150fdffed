"""Folio: markdown content storage across interchangeable backends."""

__version__ = "0.1.0"
