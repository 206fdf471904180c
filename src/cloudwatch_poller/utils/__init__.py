"""
Utilities Module

Common utilities for logging, configuration, and metrics.
"""

from .metrics import MetricsCollector
from .logger import setupLogging
from .config_loader import ConfigLoader, buildInputConfig, parseDuration

__all__ = [
    'ConfigLoader',
    'buildInputConfig',
    'parseDuration',
    'setupLogging',
    'MetricsCollector',
]
