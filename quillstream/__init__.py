"""Quillstream: streaming chapter generation over interchangeable AI backends."""

__version__ = "0.1.0"
