"""History recorders for automation runs."""
from history.base import HistoryRecorder
from history.json_store import JsonHistoryStore
from history.memory import MemoryHistoryStore

__all__ = [
    "HistoryRecorder",
    "JsonHistoryStore",
    "MemoryHistoryStore",
]
