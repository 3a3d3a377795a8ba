"""Bulk document generation queue."""

__version__ = "0.1.0"
