"""
Dialect package for sqlroute.

This package provides:
- Feature flags and keyword template keys
- Per-engine dialect profiles built from a lookup table
"""

from .features import AlterationKeywords, DbProperty, Feature
from .profiles import DialectProfile, available_dialects, dialect_for_driver, get_dialect

__all__ = [
    "AlterationKeywords",
    "DbProperty",
    "Feature",
    "DialectProfile",
    "available_dialects",
    "dialect_for_driver",
    "get_dialect",
]
