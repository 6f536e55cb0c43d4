from __future__ import annotations

from pathlib import Path

import pytest

from quanphotos.index import PhotoStore, init_db, session_factory


@pytest.fixture
def photo_store(tmp_path: Path) -> PhotoStore:
    """PhotoStore on a fresh file-backed SQLite database."""
    engine = init_db(f"sqlite+pysqlite:///{tmp_path / 'photos.db'}")
    return PhotoStore(session_factory(engine))
