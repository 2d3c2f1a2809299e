"""Tally replica sync service: XML normalisation and chunked persistence."""

__version__ = "0.3.0"
