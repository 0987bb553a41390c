"""CLI command tests."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from authserver import __version__
from authserver.cli import app

runner = CliRunner()


@asynccontextmanager
async def fake_session_context():
    yield MagicMock(commit=AsyncMock())


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_sweep_tokens_in_background(mock_queue):
    result = runner.invoke(app, ["maintenance", "sweep-tokens", "--background"])

    assert result.exit_code == 0
    mock_queue.assert_awaited_once_with("sweep_expired_tokens")
    assert "test-job-id" in result.output


def test_sweep_failure_exits_nonzero():
    failing = AsyncMock(return_value={"success": False, "error": "boom"})
    failing.__name__ = "sweep_rate_windows"

    with patch("authserver.cli.maintenance.sweep_rate_windows", failing):
        result = runner.invoke(app, ["maintenance", "sweep-rate-windows"])

    assert result.exit_code == 1
    assert "boom" in result.output


def test_unlock_unknown_account():
    with (
        patch("authserver.cli.users.get_session_context", fake_session_context),
        patch("authserver.cli.users.resolve_account", AsyncMock(return_value=None)),
    ):
        result = runner.invoke(app, ["users", "unlock", "ghost@example.com"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_unlock_locked_account():
    account = MagicMock(locked=True, failed_attempts=5)
    unlock = AsyncMock()

    with (
        patch("authserver.cli.users.get_session_context", fake_session_context),
        patch("authserver.cli.users.resolve_account", AsyncMock(return_value=account)),
        patch("authserver.cli.users.unlock_account", unlock),
    ):
        result = runner.invoke(app, ["users", "unlock", "user@example.com"])

    assert result.exit_code == 0
    unlock.assert_awaited_once()
    assert "Unlocked" in result.output
