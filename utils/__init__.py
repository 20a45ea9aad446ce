"""
Utility modules for the marketplace core.
"""

from .clock import Clock, utcnow
from .config import Config

__all__ = ["Clock", "Config", "utcnow"]
