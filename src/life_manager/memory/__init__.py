from life_manager.memory.events import RunEventLog
from life_manager.memory.message_store import SqliteMessageStore
from life_manager.memory.pruning import PruneReport, prune_memory
from life_manager.memory.session_manager import SessionManager
from life_manager.memory.store import MemoryStore

__all__ = [
    "MemoryStore",
    "PruneReport",
    "RunEventLog",
    "SessionManager",
    "SqliteMessageStore",
    "prune_memory",
]
