from __future__ import annotations

import pytest

import prison_scheduler.db as app_db
import prison_scheduler.models  # noqa: F401


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_scheduler.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.delenv("MAX_SCHEDULES_PER_SHIFT", raising=False)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.configure(db_url)
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture
def db():
    session = app_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()
