"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Epoch-millisecond clock and timestamp helpers
"""

from core.utils.time import Clock, system_clock

__all__ = ["Clock", "system_clock"]
