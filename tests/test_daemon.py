import asyncio
import json
import logging

import pytest

from clippyd.clipboard import hash_content
from clippyd.daemon import UNDECRYPTABLE_PREVIEW, Daemon, DaemonStartupError
from conftest import FakeClipboard, MemoryKeyVault

TICK = 0.05


def make_daemon(settings, logger, clipboard, vault, **config) -> Daemon:
    """Daemon with a fast poll and countdown; `config` is written as config.json."""
    document = {"pollInterval": 50, "wipeDelay": 2}
    document.update(config)
    settings.config_path.write_text(json.dumps(document))
    return Daemon(settings, logger, clipboard=clipboard, key_vault=vault, wiper_tick_seconds=TICK)


async def connect(daemon: Daemon):
    reader, writer = await asyncio.open_unix_connection(str(daemon.ipc.socket_path))
    hello = await next_frame(reader, "hello")
    assert hello["version"] == "0.1.0"
    return reader, writer


async def next_frame(reader, frame_type, predicate=lambda frame: True, timeout=3.0) -> dict:
    """Read frames until one of `frame_type` satisfies `predicate`."""

    async def _read():
        while True:
            line = await reader.readline()
            if not line:
                raise ConnectionError("daemon closed the connection")
            frame = json.loads(line)
            if frame["type"] == frame_type and predicate(frame):
                return frame

    return await asyncio.wait_for(_read(), timeout)


async def send(writer, action, **fields) -> None:
    frame = {"type": "command", "action": action}
    frame.update(fields)
    writer.write((json.dumps(frame) + "\n").encode())
    await writer.drain()


def captured(caplog) -> int:
    return sum(1 for record in caplog.records if record.getMessage().startswith("Captured"))


def test_capture_then_wipe(settings, logger, fake_clipboard: FakeClipboard, key_vault):
    """A copied value is stored encrypted, counted down and wiped from the clipboard."""
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "hello"
            started = await next_frame(reader, "state", lambda f: f["countdown"] == 2)
            countdowns = []
            while True:
                frame = await next_frame(reader, "state")
                countdowns.append(frame["countdown"])
                if frame["countdown"] is None:
                    break
            writer.close()
            entries = daemon.store.get_recent(10)
            return started, countdowns, entries
        finally:
            await daemon.stop()

    started, countdowns, entries = asyncio.run(scenario())

    assert started["entryCount"] == 1
    assert started["history"][0]["preview"] == "hello"
    assert started["history"][0]["contentLength"] == 5
    assert [c for c in countdowns if c is not None][-2:] == [1, 0]
    assert countdowns[-1] is None
    assert fake_clipboard.clears == 1
    assert fake_clipboard.content == ""
    assert len(entries) == 1
    assert entries[0].content_hash == hash_content("hello")
    assert b"hello" not in entries[0].ciphertext


def test_duplicate_copy_keeps_one_entry(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault, wipeDelay=60)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "token"
            await next_frame(reader, "state", lambda f: f["entryCount"] == 1)
            fake_clipboard.content = "other"
            await next_frame(reader, "state", lambda f: f["entryCount"] == 2)
            fake_clipboard.content = "token"
            latest = await next_frame(
                reader, "state", lambda f: f["history"][0]["preview"] == "token"
            )
            writer.close()
            return latest
        finally:
            await daemon.stop()

    latest = asyncio.run(scenario())

    assert latest["entryCount"] == 2
    assert [item["preview"] for item in latest["history"]] == ["token", "other"]


def test_copy_entry_restores_without_recapture(
    settings, logger, fake_clipboard, key_vault, caplog
):
    caplog.set_level(logging.INFO)
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault, wipeDelay=60)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "secret"
            state = await next_frame(reader, "state", lambda f: f["entryCount"] == 1)
            entry_id = state["history"][0]["id"]

            await send(writer, "clear_clipboard")
            await next_frame(reader, "state", lambda f: f["countdown"] is None)
            await asyncio.sleep(0.15)

            await send(writer, "copy_entry", id=entry_id)
            restored = await next_frame(reader, "state", lambda f: f["countdown"] == 60)
            await asyncio.sleep(0.25)
            writer.close()
            return restored
        finally:
            await daemon.stop()

    restored = asyncio.run(scenario())

    assert fake_clipboard.writes == ["secret"]
    assert restored["entryCount"] == 1
    assert captured(caplog) == 1


def test_copy_entry_errors(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            await send(writer, "copy_entry")
            missing_id = await next_frame(reader, "error")
            await send(writer, "copy_entry", id=42)
            unknown = await next_frame(reader, "error")
            await send(writer, "delete_entry")
            delete_missing = await next_frame(reader, "error")
            writer.close()
            return missing_id, unknown, delete_missing
        finally:
            await daemon.stop()

    missing_id, unknown, delete_missing = asyncio.run(scenario())

    assert "requires id" in missing_id["message"]
    assert "42" in unknown["message"]
    assert "requires id" in delete_missing["message"]
    assert fake_clipboard.writes == []


def test_undecryptable_entry_is_isolated(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault, wipeDelay=60)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "readable"
            await next_frame(reader, "state", lambda f: f["entryCount"] == 1)
            broken = daemon.store.insert_or_touch("broken", b"junk", b"\x00" * 12, "text", 4)
            state = daemon.build_state()
            await send(writer, "copy_entry", id=broken.id)
            error = await next_frame(reader, "error")
            writer.close()
            return state, error
        finally:
            await daemon.stop()

    state, error = asyncio.run(scenario())

    previews = [item.preview for item in state.history]
    assert UNDECRYPTABLE_PREVIEW in previews
    assert "readable" in previews
    assert "decrypted" in error["message"]


def test_truncation_and_preview(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(
        settings, logger, fake_clipboard, key_vault, maxContentLength=5, previewLength=3
    )

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "ab\ncdefgh"
            state = await next_frame(reader, "state", lambda f: f["entryCount"] == 1)
            writer.close()
            return state
        finally:
            await daemon.stop()

    item = asyncio.run(scenario())["history"][0]

    assert item["contentLength"] == 5
    assert item["preview"] == "ab "


def test_config_commands(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            await send(writer, "get_config")
            initial = await next_frame(reader, "config")

            await send(writer, "update_config", config={"wipeDelay": 0})
            rejected = await next_frame(reader, "error")
            unchanged = daemon.config

            await send(writer, "update_config", config={"wipeDelay": 7, "historyDisplayCount": 3})
            await next_frame(reader, "state")
            await send(writer, "get_config")
            updated = await next_frame(reader, "config")
            writer.close()
            return initial, rejected, unchanged, updated
        finally:
            await daemon.stop()

    initial, rejected, unchanged, updated = asyncio.run(scenario())

    assert initial["config"]["wipeDelay"] == 2
    assert rejected["message"].startswith("Invalid config")
    assert unchanged.wipe_delay_seconds == 2
    assert updated["config"]["wipeDelay"] == 7
    assert updated["config"]["historyDisplayCount"] == 3
    assert daemon.wiper.delay == 7
    assert json.loads(settings.config_path.read_text())["wipeDelay"] == 7


def test_pause_resume_and_clear_history(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault, wipeDelay=60)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "pausable"
            await next_frame(reader, "state", lambda f: f["entryCount"] == 1)
            await send(writer, "pause_countdown")
            paused = await next_frame(reader, "state", lambda f: f["paused"])
            await send(writer, "resume_countdown")
            resumed = await next_frame(reader, "state", lambda f: not f["paused"])
            await send(writer, "clear_history")
            cleared = await next_frame(reader, "state", lambda f: f["entryCount"] == 0)
            writer.close()
            return paused, resumed, cleared
        finally:
            await daemon.stop()

    paused, resumed, cleared = asyncio.run(scenario())

    assert paused["countdown"] is not None
    assert resumed["countdown"] is not None
    assert cleared["history"] == []


def test_quit_stops_run(settings, logger, fake_clipboard, key_vault):
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault)

    async def scenario():
        task = asyncio.create_task(daemon.run())
        while daemon.ipc is None or not daemon.running:
            await asyncio.sleep(0.01)
        reader, writer = await connect(daemon)
        await send(writer, "quit")
        await asyncio.wait_for(task, timeout=3)
        writer.close()

    asyncio.run(scenario())

    assert not daemon.running
    assert not settings.socket_path.exists()


def test_startup_fails_when_key_cannot_be_stored(settings, logger, fake_clipboard):
    daemon = make_daemon(settings, logger, fake_clipboard, MemoryKeyVault(fail_store=True))

    with pytest.raises(DaemonStartupError):
        asyncio.run(daemon.start())

    assert not daemon.running


def test_out_of_range_id_is_answered_not_fatal(settings, logger, fake_clipboard, key_vault):
    """An id SQLite cannot store gets an error frame and the connection stays usable."""
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            await send(writer, "delete_entry", id=2**70)
            error = await next_frame(reader, "error")
            await send(writer, "copy_entry", id=0)
            zero = await next_frame(reader, "error")
            await send(writer, "get_config")
            reply = await next_frame(reader, "config")
            clients = daemon.ipc.client_count
            writer.close()
            return error, zero, reply, clients
        finally:
            await daemon.stop()

    error, zero, reply, clients = asyncio.run(scenario())

    assert error["message"].startswith("Invalid command")
    assert zero["message"].startswith("Invalid command")
    assert reply["config"]["wipeDelay"] == 2
    assert clients == 1


def test_restore_of_current_clipboard_does_not_mute_next_copy(
    settings, logger, fake_clipboard, key_vault, caplog
):
    """Restoring what the clipboard already holds leaves later copies of it capturable."""
    caplog.set_level(logging.INFO)
    daemon = make_daemon(settings, logger, fake_clipboard, key_vault, wipeDelay=60)

    async def scenario():
        await daemon.start()
        try:
            reader, writer = await connect(daemon)
            fake_clipboard.content = "secret"
            state = await next_frame(reader, "state", lambda f: f["entryCount"] == 1)

            await send(writer, "copy_entry", id=state["history"][0]["id"])
            await asyncio.sleep(0.15)

            fake_clipboard.content = ""
            await asyncio.sleep(0.15)
            fake_clipboard.content = "secret"
            await asyncio.sleep(0.25)
            writer.close()
        finally:
            await daemon.stop()

    asyncio.run(scenario())

    assert fake_clipboard.writes == ["secret"]
    assert captured(caplog) == 2
