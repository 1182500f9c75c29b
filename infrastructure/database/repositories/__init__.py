"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.history import HistoryRepository

__all__ = ["HistoryRepository"]
