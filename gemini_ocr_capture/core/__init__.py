"""
Core components: configuration persistence, API key encryption and errors.
"""

from .config import Configuration, ConfigStore
from .settings import AppSettings, load_settings

__all__ = ["Configuration", "ConfigStore", "AppSettings", "load_settings"]
