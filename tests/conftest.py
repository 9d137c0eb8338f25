"""Test configuration and fixtures."""

import itertools
from datetime import datetime, timezone

import pytest
import pytest_asyncio

import config
from database import AccountStore, get_engine, get_sessionmaker, init_db
from utils.encryption import encrypt_token


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    monkeypatch.setattr(config, "ENCRYPTION_KEY", "test-encryption-key")


@pytest_asyncio.fixture
async def store(tmp_path):
    """AccountStore backed by a throwaway SQLite file"""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'notifier.db'}")
    await init_db(engine)
    yield AccountStore(get_sessionmaker(engine))
    await engine.dispose()


@pytest.fixture
def make_account(store):
    """Factory creating accounts with sensible defaults; keyword arguments override them"""
    counter = itertools.count(1)

    async def _make_account(**overrides):
        n = next(counter)
        values = dict(
            email=f"user{n}@example.com",
            provider_subject_id=f"subject-{n}",
            access_token=encrypt_token("access-token"),
            refresh_token=encrypt_token("refresh-token"),
            token_expires_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
            display_name="Alex",
            phone="+15555550100",
            timezone="America/Los_Angeles",
            send_time="07:00",
        )
        values.update(overrides)
        return await store.create_account(**values)

    return _make_account
