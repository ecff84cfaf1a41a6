"""Standalone webdisplay CLI.

Usage:
    webdisplay show   [--where WHERE] [--batch] [--width N] [--height N] [--wait SEC]
    webdisplay url    [--remote] [--batch]
    webdisplay config
    webdisplay serve
    webdisplay halt   TAG
"""

from __future__ import annotations

import logging
import threading

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="webdisplay",
    help="Open and inspect web windows of the webdisplay session manager.",
    no_args_is_help=True,
)
console = Console()


def _info(msg: str) -> None:
    console.print(f"[dim]>[/dim] {msg}")


def _success(msg: str) -> None:
    console.print(f"[green]✓[/green] {msg}")


def _error(msg: str) -> None:
    console.print(f"[red]✗[/red] {msg}")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Open and inspect web windows of the webdisplay session manager."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )


@app.command()
def show(
    where: str = typer.Option(
        "", "--where", "-w", help="Display kind: native, browser, chrome, firefox, cef, qt5 or a program."
    ),
    batch: bool = typer.Option(False, "--batch", help="Headless (batch) window."),
    width: int = typer.Option(0, "--width", help="Window width (0 = default)."),
    height: int = typer.Option(0, "--height", help="Window height (0 = default)."),
    wait: float = typer.Option(
        0.0, "--wait", help="Seconds to wait for the client to connect (0 = don't wait)."
    ),
) -> None:
    """Show a new window and optionally wait for its client to connect."""
    from webdisplay import WebDisplayError, get_manager

    mgr = get_manager()
    try:
        win = mgr.create_window(batch_mode=batch, width=width, height=height)
        result = win.show(where)
    except WebDisplayError as e:
        _error(str(e))
        raise typer.Exit(1)

    _success(f"Window {win.id} shown ({result.mode.value})")
    console.print(f"  [bold]URL:[/bold]     {result.url}")
    console.print(f"  [bold]Key:[/bold]     {result.key}")
    console.print(f"  [bold]Client:[/bold]  {result.record.tag}")

    if wait <= 0:
        return
    _info(f"Waiting up to {wait:g}s for the client to connect...")
    try:
        if win.wait_for_connection(timeout=wait):
            _success("Client connected.")
        else:
            _error("No client connected before the timeout.")
            raise typer.Exit(1)
    finally:
        mgr.terminate()


@app.command()
def url(
    remote: bool = typer.Option(False, "--remote", help="Bind a port and print the full URL."),
    batch: bool = typer.Option(False, "--batch", help="Batch-mode window."),
) -> None:
    """Create a window and print its URL."""
    from webdisplay import WebDisplayError, get_manager

    mgr = get_manager()
    try:
        win = mgr.create_window(batch_mode=batch)
        console.print(win.get_url(remote=remote))
    except WebDisplayError as e:
        _error(str(e))
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Show the resolved HTTP server configuration."""
    from webdisplay import get_manager

    mgr = get_manager()
    cfg = mgr.settings.port_config()
    table = Table(title="webdisplay configuration", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("HttpPort", str(cfg.fixed_port) if cfg.fixed_port else "random")
    table.add_row("Port range", f"[{cfg.min_port}, {cfg.max_port})")
    table.add_row("Loopback", "yes" if cfg.loopback else "no")
    table.add_row("Bind", cfg.bind_address or "-")
    table.add_row("HTTPS", f"yes ({cfg.cert_path})" if cfg.use_tls else "no")
    table.add_row("WebSocket timeout", f"{cfg.ws_timeout_ms} ms")
    table.add_row("WaitFor timeout", f"{mgr.settings.wait_timeout:g} s")
    table.add_row("Display", mgr.settings.display or "native")
    table.add_row("Platform", mgr.platform.name)
    table.add_row("Engines", ", ".join(mgr.engines.names) or "-")
    console.print(table)


@app.command()
def serve() -> None:
    """Bind the HTTP server and keep it running until interrupted."""
    from webdisplay import WebDisplayError, get_manager
    from webdisplay.server import describe

    mgr = get_manager()
    try:
        address = mgr.ensure_server(require_network=True)
    except WebDisplayError as e:
        _error(str(e))
        raise typer.Exit(1)

    assert mgr.server is not None
    info = describe(mgr.server)
    _success(f"Serving on {address}")
    console.print(f"  [bold]Base:[/bold]    /{info['base_endpoint']}/")

    stop_event = threading.Event()
    try:
        stop_event.wait()
    except KeyboardInterrupt:
        _info("Interrupted, shutting down...")
    finally:
        mgr.terminate()


@app.command()
def halt(
    tag: str = typer.Argument(help="Client tag as recorded by show, e.g. 'pid:1234'."),
) -> None:
    """Kill a display client started with a 'pid:<n>' tag."""
    from webdisplay import get_manager

    if get_manager().halt_client(tag):
        _success(f"Halted {tag}.")
    else:
        _info(f"Nothing to halt for {tag!r}.")


if __name__ == "__main__":
    app()
