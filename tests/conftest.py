"""Shared fixtures for burrow tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import burrow.models  # noqa: F401  (registers tables on SQLModel.metadata)
from burrow.config import BurrowConfig
from burrow.fs.service import FileTreeService
from burrow.fs.types import Principal

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session for direct store tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Physical store root; ``users/alice`` and ``users/bob`` exist inside it."""
    root = tmp_path / "store"
    (root / "users" / "alice").mkdir(parents=True)
    (root / "users" / "bob").mkdir(parents=True)
    return root


@pytest.fixture
def config(store_root: Path) -> BurrowConfig:
    return BurrowConfig(root=store_root)


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id="alice", root_path="users/alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id="bob", root_path="users/bob")


@pytest.fixture
def service(
    config: BurrowConfig, session_factory: async_sessionmaker[AsyncSession]
) -> FileTreeService:
    return FileTreeService(config, session_factory)
