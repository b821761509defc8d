"""Process-wide store selection: SQL when a database is configured, memory otherwise."""
from __future__ import annotations

import logging
from typing import Optional

from scorekeeper.core.database import create_all_tables, get_database_url
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.features.storage.memory import InMemoryProgressStore
from scorekeeper.features.storage.sql import SqlProgressStore

logger = logging.getLogger("scorekeeper")

_store: Optional[ProgressStore] = None


def get_store() -> ProgressStore:
    global _store
    if _store is None:
        if get_database_url():
            create_all_tables()
            _store = SqlProgressStore()
            logger.info("storage.selected", extra={"event_type": "sql"})
        else:
            _store = InMemoryProgressStore()
            logger.info("storage.selected", extra={"event_type": "memory"})
    return _store


def set_store(store: Optional[ProgressStore]) -> None:
    """Swap the process store (tests). None re-selects on next use."""
    global _store
    _store = store
