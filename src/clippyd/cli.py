import asyncio
import signal
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from clippyd import __version__
from clippyd.config import DaemonSettings, get_settings
from clippyd.daemon import Daemon, DaemonStartupError
from clippyd.ipc import IpcClient, IpcClientError
from clippyd.logger import configure_logging
from clippyd.pidfile import AlreadyRunningError, PidLock

console = Console(
    width=120,
    color_system="auto",
)

app = typer.Typer(name="clippyd", help="Encrypted clipboard history daemon.")


def _settings() -> DaemonSettings:
    return get_settings(DaemonSettings)


def _client() -> IpcClient:
    client = IpcClient(_settings().socket_path)
    try:
        client.connect()
    except IpcClientError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    return client


def _send(action: str, entry_id: Optional[int] = None, confirm: bool = True) -> None:
    """
    Send one command. With `confirm`, a get_config round trip follows: commands are
    handled in order, so an error frame for `action` arrives before the config reply.
    """
    with _client() as client:
        try:
            client.send_command(action, id=entry_id)
            if confirm:
                client.request_config()
        except IpcClientError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
    console.print(f"[bold green]{action}[/bold green] done.")


def _parse_value(raw: str) -> Any:
    try:
        return int(raw)
    except ValueError:
        return raw


async def _serve(daemon: Daemon) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, daemon.request_shutdown)
    await daemon.run()


@app.command(name="run", help="Run the daemon in the foreground.")
def run() -> None:
    settings = _settings()
    settings.home_dir.mkdir(parents=True, exist_ok=True)
    logger = configure_logging(settings)
    lock = PidLock(settings.pid_path)
    try:
        lock.acquire()
    except AlreadyRunningError as e:
        logger.error(str(e))
        raise typer.Exit(code=1)
    try:
        asyncio.run(_serve(Daemon(settings, logger)))
    except DaemonStartupError as e:
        logger.critical("Fatal: %s", e)
        raise typer.Exit(code=1)
    finally:
        lock.release()


@app.command(name="status", help="Show whether the daemon is reachable.")
def status() -> None:
    settings = _settings()
    pid = PidLock(settings.pid_path).read_pid()
    with _client() as client:
        config = client.request_config()
        console.print(f"[bold cyan]daemon:[/bold cyan] running (pid {pid or '?'})")
        console.print(f"[bold cyan]protocol:[/bold cyan] {client.server_version}")
        console.print(f"[bold cyan]client:[/bold cyan] {__version__}")
        console.print(f"[bold cyan]home:[/bold cyan] {settings.home_dir}")
        console.print(f"[bold cyan]wipe delay:[/bold cyan] {config.get('wipeDelay')}s")


@app.command(name="config", help="Print the active configuration.")
def show_config() -> None:
    with _client() as client:
        config = client.request_config()
    table = Table("key", "value")
    for key, value in config.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command(name="set", help="Update configuration values, e.g. wipeDelay=10.")
def set_config(pairs: list[str] = typer.Argument(..., help="KEY=VALUE pairs")) -> None:
    update: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            console.print(f"[bold red]Error:[/bold red] expected KEY=VALUE, got {pair!r}")
            raise typer.Exit(code=2)
        update[key] = _parse_value(value)
    with _client() as client:
        client.send_command("update_config", config=update)
        try:
            config = client.request_config()
        except IpcClientError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
    console.print(f"[bold green]Config updated:[/bold green] {config}")


@app.command(name="clear", help="Clear the clipboard now and cancel the countdown.")
def clear() -> None:
    _send("clear_clipboard")


@app.command(name="clear-history", help="Delete the whole history.")
def clear_history() -> None:
    _send("clear_history")


@app.command(name="copy", help="Restore a history entry to the clipboard.")
def copy(entry_id: int = typer.Argument(..., help="History entry id")) -> None:
    _send("copy_entry", entry_id)


@app.command(name="delete", help="Delete one history entry.")
def delete(entry_id: int = typer.Argument(..., help="History entry id")) -> None:
    _send("delete_entry", entry_id)


@app.command(name="pause", help="Pause the wipe countdown.")
def pause() -> None:
    _send("pause_countdown")


@app.command(name="resume", help="Resume the wipe countdown.")
def resume() -> None:
    _send("resume_countdown")


@app.command(name="quit", help="Stop the daemon.")
def quit_daemon() -> None:
    _send("quit", confirm=False)


def _render_state(state: dict) -> Table:
    countdown = state.get("countdown")
    title = "idle" if countdown is None else f"wipe in {countdown}s"
    if state.get("paused"):
        title += " (paused)"
    table = Table("id", "preview", "chars", "last used", title=f"{title} | {state.get('entryCount', 0)} entries")
    for item in state.get("history", []):
        accessed = datetime.fromisoformat(item["accessedAt"].replace("Z", "+00:00"))
        table.add_row(
            str(item["id"]),
            item["preview"],
            str(item["contentLength"]),
            accessed.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


@app.command(name="watch", help="Print state broadcasts as they arrive.")
def watch() -> None:
    client = IpcClient(_settings().socket_path, timeout=None)
    try:
        client.connect()
        while True:
            message = client.read_message()
            if message.get("type") == "state":
                console.print(_render_state(message))
    except IpcClientError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        pass
    finally:
        client.close()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
