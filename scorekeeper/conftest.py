# scorekeeper/conftest.py
import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from scorekeeper.core.retry import RetryPolicy  # noqa: E402
from scorekeeper.features.storage.memory import InMemoryProgressStore  # noqa: E402
from scorekeeper.features.storage.provider import set_store  # noqa: E402


@pytest.fixture(autouse=True)
def memory_store(monkeypatch):
    """
    Fresh in-memory store per test, installed as the process store.

    DATABASE_URL is cleared so nothing falls through to a real database.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    store = InMemoryProgressStore()
    set_store(store)
    yield store
    set_store(None)


@pytest.fixture
def fast_retry():
    """Retry policy with no waiting between attempts."""
    return RetryPolicy(
        initial_interval=timedelta(0),
        backoff_coefficient=2.0,
        maximum_interval=timedelta(0),
        maximum_attempts=3,
    )


@pytest.fixture
def sql_store(tmp_path):
    """SQL store backed by a throwaway SQLite file."""
    from scorekeeper.core.database import create_all_tables, dispose_engine, init_engine
    from scorekeeper.features.storage.sql import SqlProgressStore

    init_engine(f"sqlite:///{tmp_path / 'scorekeeper.db'}")
    create_all_tables()
    yield SqlProgressStore()
    dispose_engine()
