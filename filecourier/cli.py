#!/usr/bin/env python3
"""
filecourier CLI

Command-line interface for encrypted single-file transfers.

Usage:
    filecourier send SERVER PORT FILE [--ws]     # Send a file
    filecourier recv OUTPUT_DIR PORT [--ws]      # Receive files until Ctrl+C
    filecourier --events recv ./inbox 9000       # ...and publish progress events
    filecourier example-config > config.json     # Write a config template
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import click
from rich.console import Console
from rich.panel import Panel
from rich.logging import RichHandler

from .api import EventBus, EventServer
from .config import EXAMPLE_CONFIG, Config, load_config
from .errors import TransferError
from .transfer import MessageTransferServer, TransferServer, send_file, send_file_ws

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def resolve_server(server: str) -> str:
    """Accept either a bare host or a URL; return the host part."""
    if '://' in server:
        host = urlparse(server).hostname
        if not host:
            raise click.BadParameter(f"No host in URL: {server}", param_hint='SERVER')
        return host
    return server


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.option('--events', is_flag=True, help='Serve progress events over WebSocket')
@click.option('--events-port', type=int, default=None, help='Progress events port')
@click.pass_context
def cli(ctx, verbose, config_path, events, events_port):
    """filecourier - encrypted single-file transfer between two peers."""
    config = load_config(Path(config_path) if config_path else None)
    if events_port is not None:
        config.events_port = events_port

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['events'] = events


async def _start_events(config: Config, enabled: bool):
    """Create the event bus and, if requested, its WebSocket server."""
    bus = EventBus(capacity=config.events_capacity)
    server = None
    if enabled:
        server = EventServer(bus, host=config.events_host, port=config.events_port)
        await server.start()
        console.print(f"[dim]Progress events at ws://{config.events_host}:"
                      f"{config.events_port}/ws[/dim]")
    return bus, server


@cli.command()
@click.argument('server')
@click.argument('port', type=int)
@click.argument('file_path', metavar='FILE', type=click.Path(exists=True, dir_okay=False))
@click.option('--ws', is_flag=True, help='Use the WebSocket transport')
@click.pass_context
def send(ctx, server, port, file_path, ws):
    """Send FILE to a receiver at SERVER:PORT."""
    config: Config = ctx.obj['config']
    host = resolve_server(server)

    async def run():
        bus, event_server = await _start_events(config, ctx.obj['events'])
        try:
            sender = send_file_ws if ws else send_file
            kwargs = {'path': config.ws_path} if ws else {}
            return await sender(
                host, port, file_path,
                chunk_size=config.chunk_size,
                connect_timeout=config.connect_timeout,
                events=bus,
                temp_dir=config.temp_dir,
                **kwargs
            )
        finally:
            if event_server:
                await event_server.stop()

    try:
        result = asyncio.run(run())
    except (TransferError, OSError) as e:
        console.print(f"[red]✗ Send failed: {e}[/red]")
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold green]File Sent[/bold green]\n\n"
        f"Name: [cyan]{result.filename}[/cyan]\n"
        f"Size: [yellow]{format_size(result.size)}[/yellow]\n"
        f"Transport: [yellow]{'WebSocket' if ws else 'TCP'}[/yellow]\n\n"
        f"[bold]SHA-256:[/bold]\n"
        f"[green]{result.digest}[/green]",
        title="Transfer"
    ))


@cli.command()
@click.argument('output_dir', type=click.Path(file_okay=False))
@click.argument('port', type=int)
@click.option('--ws', is_flag=True, help='Use the WebSocket transport')
@click.option('--host', default=None, help='Address to bind')
@click.pass_context
def recv(ctx, output_dir, port, ws, host):
    """Receive files into OUTPUT_DIR on PORT until interrupted."""
    config: Config = ctx.obj['config']
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    async def run():
        bus, event_server = await _start_events(config, ctx.obj['events'])
        server_cls = MessageTransferServer if ws else TransferServer
        receiver = server_cls(
            output_dir,
            host=host or config.host,
            port=port,
            chunk_size=config.chunk_size,
            events=bus,
            session_history=config.session_history,
        )

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                pass  # Windows

        console.print(Panel.fit(
            f"[bold green]Receiver Started[/bold green]\n\n"
            f"Transport: [yellow]{'WebSocket' if ws else 'TCP'}[/yellow]\n"
            f"Port: [yellow]{port}[/yellow]\n"
            f"Output Dir: [blue]{output_dir}[/blue]",
            title="Receiver"
        ))
        console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

        try:
            await receiver.serve(stop_event)
        finally:
            if event_server:
                await event_server.stop()

        return receiver.get_stats()

    try:
        stats: Optional[dict] = asyncio.run(run())
    except KeyboardInterrupt:
        stats = None

    console.print("\n[yellow]Receiver stopped[/yellow]")
    if stats:
        console.print(f"[dim]{stats['files_received']} received, "
                      f"{stats['files_failed']} failed, "
                      f"{format_size(stats['bytes_received'])}[/dim]")


@cli.command('example-config')
def example_config():
    """Print an example config.json."""
    click.echo(EXAMPLE_CONFIG.strip())


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


if __name__ == '__main__':
    cli()
