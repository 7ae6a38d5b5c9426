"""Tests for engine options and database error mapping."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from studybuddy.core.errors import UpstreamFailure
from studybuddy.database import engine_options, store_errors


class TestEngineOptions:
    def test_asyncpg_gets_command_timeout(self):
        options = engine_options("postgresql+asyncpg://u:p@db/studybuddy", 5.0)
        assert options["connect_args"] == {"command_timeout": 5.0}
        assert options["pool_pre_ping"] is True

    def test_sqlite_has_no_command_timeout(self):
        options = engine_options("sqlite+aiosqlite:///test.db", 5.0)
        assert "connect_args" not in options


class TestStoreErrors:
    @pytest.mark.asyncio
    async def test_timeout_becomes_upstream_failure(self):
        with pytest.raises(UpstreamFailure) as exc_info:
            async with store_errors("content scan"):
                raise asyncio.TimeoutError()

        assert exc_info.value.error_code == "timeout"
        assert "content scan" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_lost_connection_becomes_upstream_failure(self):
        with pytest.raises(UpstreamFailure) as exc_info:
            async with store_errors("content lookup"):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        assert exc_info.value.error_code == "unreachable"

    @pytest.mark.asyncio
    async def test_other_errors_pass_through(self):
        with pytest.raises(KeyError):
            async with store_errors("content lookup"):
                raise KeyError("content_id")
