"""
Logging module for DevReload.
This module provides the console logging setup used by the entry point.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
