import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Tests never touch the configured MySQL database
os.environ["DATABASE_URL"] = "disabled"
os.environ.setdefault("TZ", "UTC")

# Ensure project root is on sys.path so `services.*` imports work,
# and the tests dir so test modules can import `fakes`
ROOT_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (ROOT_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


# Explicitly enable pytest-asyncio plugin for async tests/fixtures
pytest_plugins = ("pytest_asyncio",)


from core.db import Base, build_session_maker  # noqa: E402
from models import db_models  # noqa: E402,F401
from services.channel_senders import SenderRegistry  # noqa: E402
from models.subscription import ChannelType  # noqa: E402

from fakes import FakeStore, RecordingSender  # noqa: E402


@pytest.fixture()
def store():
    return FakeStore()


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def registry(sender):
    """Every channel type routed to the same recording sender."""
    return SenderRegistry({channel_type.value: sender for channel_type in ChannelType})


@pytest_asyncio.fixture()
async def session_maker(tmp_path):
    """File-backed SQLite database with the full schema, one per test."""
    engine, maker = build_session_maker(f"sqlite+aiosqlite:///{tmp_path / 'subtrack.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield maker
    await engine.dispose()
