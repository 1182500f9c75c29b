"""
Services
========

**container**
  ServiceContainer: builds and tears down every long-lived relay object.

**history**
  HistorySink: fire-and-forget audit log over SQLite.
"""

from .history import HistorySink

__all__ = ["HistorySink"]
