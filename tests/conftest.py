import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RELAY_SECRET", "test-relay-secret")
os.environ.setdefault("GAME_API_KEY", "test-game-key")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

import models  # noqa: E402,F401
from core.db import Base, build_engine, build_session_factory  # noqa: E402
from services.attachments import AttachmentStore  # noqa: E402
from services.lifecycle import ReportLifecycle  # noqa: E402
from tests import helpers  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return helpers.RecordingNotifier()


@pytest.fixture
def store(tmp_path):
    return AttachmentStore(tmp_path / "uploads")


@pytest.fixture
def lifecycle(notifier, store):
    return ReportLifecycle(notifier, store, max_file_size=1024, max_files_per_report=2)


@pytest.fixture
def manual_lifecycle(notifier, store):
    """Lifecycle without the post-create auto-assignment hook."""
    return ReportLifecycle(notifier, store, max_file_size=1024, max_files_per_report=2, auto_assign_on_create=False)
