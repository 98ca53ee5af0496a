import asyncio
import threading

from typer.testing import CliRunner

from clippyd.cli import _parse_value, _render_state, app
from clippyd.config import get_settings
from clippyd.ipc import ConfigMessage, ErrorMessage, IpcServer

runner = CliRunner()


def test_parse_value():
    assert _parse_value("10") == 10
    assert _parse_value("ten") == "ten"


def test_set_rejects_malformed_pair(monkeypatch, home_dir):
    monkeypatch.setenv("CLIPPY_HOME", str(home_dir))
    get_settings.cache_clear()

    result = runner.invoke(app, ["set", "wipeDelay"])

    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output


def test_commands_fail_without_daemon(monkeypatch, home_dir):
    monkeypatch.setenv("CLIPPY_HOME", str(home_dir))
    get_settings.cache_clear()

    for args in (["status"], ["pause"], ["copy", "3"]):
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "Error" in result.output

    get_settings.cache_clear()


def test_render_state_table():
    table = _render_state(
        {
            "countdown": 4,
            "paused": True,
            "entryCount": 1,
            "history": [
                {
                    "id": 1,
                    "preview": "hello",
                    "contentLength": 5,
                    "createdAt": "2024-01-01T00:00:00Z",
                    "accessedAt": "2024-01-01T00:00:00Z",
                }
            ],
        }
    )

    assert table.title == "wipe in 4s (paused) | 1 entries"
    assert table.row_count == 1


def test_copy_reports_daemon_error(monkeypatch, home_dir, logger):
    """An error frame answering the command is shown and the exit status is 1."""
    monkeypatch.setenv("CLIPPY_HOME", str(home_dir))
    get_settings.cache_clear()
    received = []

    async def on_command(command, session):
        received.append((command.action, command.id))
        if command.action == "copy_entry" and command.id == 42:
            server.send(session, ErrorMessage(message="No entry with id 42"))
        elif command.action == "get_config":
            server.send(session, ConfigMessage(config={"wipeDelay": 5}))

    server = IpcServer(home_dir / "clippy.sock", on_command, logger)
    ready = threading.Event()
    done = threading.Event()

    async def serve():
        await server.start()
        ready.set()
        await asyncio.to_thread(done.wait)
        await server.stop()

    thread = threading.Thread(target=asyncio.run, args=(serve(),), daemon=True)
    thread.start()
    try:
        assert ready.wait(timeout=5)
        missing = runner.invoke(app, ["copy", "42"])
        found = runner.invoke(app, ["copy", "7"])
        invalid = runner.invoke(app, ["delete", "0"])
    finally:
        done.set()
        thread.join(timeout=5)
        get_settings.cache_clear()

    assert missing.exit_code == 1
    assert "No entry with id 42" in missing.output
    assert found.exit_code == 0
    assert "copy_entry" in found.output
    assert invalid.exit_code == 1
    assert "Invalid command" in invalid.output
    assert ("copy_entry", 7) in received
    assert ("delete_entry", 0) not in received
