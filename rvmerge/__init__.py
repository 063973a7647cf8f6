"""Merge and validate RVTools workbook exports."""

__version__ = "0.1.0"
