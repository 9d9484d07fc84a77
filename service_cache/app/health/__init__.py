"""
Health/stats reporting for the cache layer.
"""

from .reporter import CacheStatusReporter

__all__ = ["CacheStatusReporter"]
