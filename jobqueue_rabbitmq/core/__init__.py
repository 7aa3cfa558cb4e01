"""
Core module containing configuration, logging and connection helpers.
"""

from .config import ClientOptions, ExchangeOptions, QueueOptions, Settings, get_settings
from .logger import logger

__all__ = [
    "Settings",
    "get_settings",
    "ClientOptions",
    "ExchangeOptions",
    "QueueOptions",
    "logger",
]
