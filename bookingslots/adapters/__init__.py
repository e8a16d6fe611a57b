"""
Adapters layer - schedule stores (in-memory and SQL).
"""

from .memory_store import InMemoryScheduleStore, InMemoryTransaction
from .sql_store import SqlScheduleStore, SqlScheduleTransaction, create_store_engine

__all__ = [
    "InMemoryScheduleStore",
    "InMemoryTransaction",
    "SqlScheduleStore",
    "SqlScheduleTransaction",
    "create_store_engine",
]
