"""
Utility functions and helper classes.

This module contains common utilities for logging and error reporting.
"""

from .logger import setup_logger, get_logger
from .error_handler import ErrorHandler

__all__ = ["setup_logger", "get_logger", "ErrorHandler"]
