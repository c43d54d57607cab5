"""Tests for AuditBus, audit event types and the AuditLog writer."""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import pytest
from sqlmodel import select

from burrow.events import AuditAction, AuditBus, AuditEvent, AuditLogWriter, AuditSeverity
from burrow.fs.service import FileTreeService
from burrow.models.audit import AuditLog

if TYPE_CHECKING:
    from burrow.fs.types import Principal


# =========================================================================
# Helpers
# =========================================================================


async def _failing_handler(event: AuditEvent) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on {event.resource}")


# =========================================================================
# Event types
# =========================================================================


class TestAuditAction:
    def test_unique_values(self) -> None:
        values = [a.value for a in AuditAction]
        assert len(values) == len(set(values))

    def test_values(self) -> None:
        assert AuditAction.FILE_UPLOADED.value == "file_uploaded"
        assert AuditAction.ITEM_RESTORED.value == "item_restored_from_trash"


class TestAuditEvent:
    def test_defaults(self) -> None:
        ev = AuditEvent(action=AuditAction.FILE_MOVED, resource="users/a/x.txt")
        assert ev.user_id is None
        assert ev.details is None
        assert ev.severity is AuditSeverity.INFO
        assert ev.timestamp.tzinfo is not None

    def test_immutable(self) -> None:
        ev = AuditEvent(action=AuditAction.FILE_MOVED)
        with pytest.raises(AttributeError):
            ev.resource = "changed"  # type: ignore[misc]


# =========================================================================
# AuditBus
# =========================================================================


class TestAuditBusRegistration:
    def test_register_and_unregister(self) -> None:
        bus = AuditBus()
        bus.register(_failing_handler)
        assert bus.handler_count == 1
        assert bus.unregister(_failing_handler) is True
        assert bus.handler_count == 0

    def test_unregister_missing_returns_false(self) -> None:
        assert AuditBus().unregister(_failing_handler) is False

    def test_clear(self) -> None:
        bus = AuditBus()
        bus.register(_failing_handler)
        bus.register(_failing_handler)
        bus.clear()
        assert bus.handler_count == 0


class TestAuditBusEmit:
    async def test_handlers_called_in_order(self) -> None:
        bus = AuditBus()
        order: list[int] = []

        async def first(event: AuditEvent) -> None:
            order.append(1)

        async def second(event: AuditEvent) -> None:
            order.append(2)

        bus.register(first)
        bus.register(second)
        await bus.emit(AuditEvent(action=AuditAction.FILE_UPLOADED))
        assert order == [1, 2]

    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = AuditBus()
        collected: list[AuditEvent] = []

        async def collect(event: AuditEvent) -> None:
            collected.append(event)

        bus.register(_failing_handler)
        bus.register(collect)
        ev = AuditEvent(action=AuditAction.FILE_UPLOADED)
        await bus.emit(ev)
        assert collected == [ev]

    async def test_error_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = AuditBus()
        bus.register(_failing_handler)

        with caplog.at_level(logging.WARNING, logger="burrow.events"):
            await bus.emit(AuditEvent(action=AuditAction.FILE_DELETED, resource="users/a/x.txt"))

        assert "failed" in caplog.text
        assert "file_deleted" in caplog.text
        assert "users/a/x.txt" in caplog.text


# =========================================================================
# AuditLogWriter
# =========================================================================


class TestAuditLogWriter:
    async def test_persists_event(self, session_factory) -> None:
        writer = AuditLogWriter(session_factory)
        await writer(
            AuditEvent(
                action=AuditAction.FILE_UPLOADED,
                user_id="alice",
                resource="users/alice/a.txt",
                details="5 bytes",
            )
        )

        async with session_factory() as session:
            rows = (await session.execute(select(AuditLog))).scalars().all()
        assert len(rows) == 1
        assert rows[0].action == "file_uploaded"
        assert rows[0].user_id == "alice"
        assert rows[0].severity == "info"

    async def test_truncates_long_fields(self, session_factory) -> None:
        writer = AuditLogWriter(session_factory)
        await writer(
            AuditEvent(action=AuditAction.FILE_MOVED, resource="r" * 600, details="d" * 1200)
        )

        async with session_factory() as session:
            row = (await session.execute(select(AuditLog))).scalar_one()
        assert len(row.resource) == 500
        assert len(row.details) == 1000


# =========================================================================
# Integration: FileTreeService + AuditBus + AuditLogWriter
# =========================================================================


class TestAuditIntegration:
    async def test_operations_write_audit_rows(
        self, config, session_factory, alice: Principal
    ) -> None:
        bus = AuditBus()
        bus.register(AuditLogWriter(session_factory))
        svc = FileTreeService(config, session_factory, audit_bus=bus)

        await svc.create_directory(alice, None, "docs")
        await svc.upload(alice, "users/alice/docs", "a.txt", io.BytesIO(b"hi"))
        await svc.delete(alice, "users/alice/docs/a.txt")

        async with session_factory() as session:
            rows = (await session.execute(select(AuditLog))).scalars().all()
        assert sorted(r.action for r in rows) == [
            "file_moved_to_trash",
            "file_uploaded",
            "folder_created",
        ]
        assert {r.user_id for r in rows} == {"alice"}

    async def test_failing_sink_does_not_fail_operation(
        self, config, session_factory, alice: Principal
    ) -> None:
        bus = AuditBus()
        bus.register(_failing_handler)
        svc = FileTreeService(config, session_factory, audit_bus=bus)

        result = await svc.create_directory(alice, None, "docs")
        assert result.path == "users/alice/docs"
