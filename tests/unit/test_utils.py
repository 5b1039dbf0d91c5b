"""Unit tests for the utils module."""

import asyncio
from unittest.mock import MagicMock

import pytest

from orbit_bridge.utils import parse_positive_int, timed_operation


class TestTimedOperation:
    """Tests for the timed_operation async context manager."""

    async def test_elapsed_ms_set_after_block(self) -> None:
        async with timed_operation("op") as timing:
            assert "elapsed_ms" not in timing
            await asyncio.sleep(0.01)

        assert isinstance(timing["elapsed_ms"], float)
        assert timing["elapsed_ms"] > 0

    async def test_logs_name_duration_and_extra(self) -> None:
        mock_log = MagicMock()

        async with timed_operation("webhook_processed", log=mock_log, source="test") as timing:
            pass

        mock_log.info.assert_called_once()
        args, kwargs = mock_log.info.call_args
        assert args == ("webhook_processed",)
        assert kwargs["source"] == "test"
        assert kwargs["duration_ms"] == timing["elapsed_ms"]

    async def test_keys_added_inside_block_are_logged(self) -> None:
        mock_log = MagicMock()

        async with timed_operation("webhook_processed", log=mock_log) as timing:
            timing["state"] = "done"

        assert mock_log.info.call_args.kwargs["state"] == "done"

    async def test_recorded_and_logged_when_block_raises(self) -> None:
        mock_log = MagicMock()
        timing: dict = {}

        with pytest.raises(RuntimeError, match="boom"):
            async with timed_operation("failing", log=mock_log) as timing:
                raise RuntimeError("boom")

        assert "elapsed_ms" in timing
        mock_log.info.assert_called_once()

    async def test_no_log_without_logger(self) -> None:
        async with timed_operation("quiet") as timing:
            pass

        assert timing["elapsed_ms"] >= 0


class TestParsePositiveInt:
    """Tests for parse_positive_int()."""

    @pytest.mark.parametrize(("value", "expected"), [("5", 5), (7, 7), ("100", 100)])
    def test_valid(self, value, expected):
        assert parse_positive_int(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "0", "-3", 0, True, "2.5"])
    def test_invalid_falls_back_to_default(self, value):
        assert parse_positive_int(value, 10) == 10

    def test_default_is_none(self):
        assert parse_positive_int("nope") is None
