"""Statistics over settled rounds."""

from core.statistics.history import HistoryStats, summarize_history

__all__ = [
    "HistoryStats",
    "summarize_history",
]
