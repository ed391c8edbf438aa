"""Shared fixtures: every test gets its own database directory."""

import pytest

from worldline.config import settings
from worldline.database import db as db_module


@pytest.fixture(autouse=True)
def isolated_database_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "TIMELINE_WRITE_MODE", "legacy")
    monkeypatch.setattr(db_module, "_initialized_paths", set())
    return tmp_path


@pytest.fixture
def dual_write_enabled(monkeypatch):
    monkeypatch.setattr(settings, "TIMELINE_WRITE_MODE", "dual-write")
