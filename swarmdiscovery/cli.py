#!/usr/bin/env python3
"""
Swarm Discovery CLI

Command-line interface for topic-based peer discovery.

Usage:
    swarm-discovery lookup KEY             # Print peers as they are found
    swarm-discovery lookup KEY --once      # Print the first peer and exit
    swarm-discovery announce KEY -p 4000   # Announce and print peers
    swarm-discovery ping                   # Ping the bootstrap nodes
    swarm-discovery status                 # Show configuration
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import load_config, parse_node
from .errors import DiscoveryError
from .peers import PeerCandidate
from .session import DiscoverySession, create_session

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def parse_key(text: str) -> bytes:
    """
    Turn a command-line key into bytes.

    Hex is used as-is; anything else is hashed with SHA-256.
    """
    try:
        key = bytes.fromhex(text)
    except ValueError:
        key = b''
    return key or hashlib.sha256(text.encode()).digest()


def print_peer(peer: PeerCandidate):
    source = "[cyan]local[/cyan]" if peer.local else "[magenta]dht[/magenta]"
    console.print(f"{source} [yellow]{peer.host}:{peer.port}[/yellow]")


async def _run_topic(session: DiscoverySession, topic, duration: Optional[float]):
    topic.on_peer(print_peer)
    topic.on_update(
        lambda err: console.print(f"[dim]DHT stream restarting ({err or 'ended'})[/dim]")
    )
    console.print(f"[dim]Domain: {topic.domain}[/dim]")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
    try:
        if duration:
            await asyncio.sleep(duration)
        else:
            while True:
                await asyncio.sleep(1)
    finally:
        await session.destroy()


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(path_type=Path), default=None,
              help='JSON config file')
@click.option('--domain', default=None, help='Local discovery domain suffix')
@click.option('--bootstrap', multiple=True, help='Bootstrap node (host:port)')
@click.pass_context
def cli(ctx, verbose, config_path, domain, bootstrap):
    """Swarm Discovery - find peers on a topic over DHT and mDNS."""
    config = load_config(config_path)
    setup_logging(verbose, config.log_level)

    if domain:
        config.domain = domain
    if bootstrap:
        try:
            config.bootstrap = [parse_node(node) for node in bootstrap]
        except ValueError:
            raise click.BadParameter("use host:port", param_hint='--bootstrap')

    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.argument('key')
@click.option('--once', is_flag=True, help='Stop after the first peer')
@click.option('--duration', type=float, default=None, help='Seconds to run')
@click.pass_context
def lookup(ctx, key, once, duration):
    """Look up peers on KEY."""
    config = ctx.obj['config']
    topic_key = parse_key(key)

    async def run():
        session = await create_session(config)

        if not once:
            await _run_topic(session, session.lookup(topic_key), duration)
            return

        try:
            peer = await asyncio.wait_for(session.lookup_one(topic_key), duration)
            print_peer(peer)
        except asyncio.TimeoutError:
            console.print("[red]✗ No peer found in time[/red]")
        except DiscoveryError as e:
            console.print(f"[red]✗ {e}[/red]")
        finally:
            await session.destroy()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@cli.command()
@click.argument('key')
@click.option('--port', '-p', type=int, required=True, help='Port to announce')
@click.option('--local-port', type=int, default=0, help='Port for local answers')
@click.option('--lookup', 'also_lookup', is_flag=True, help='Also query the local network')
@click.option('--duration', type=float, default=None, help='Seconds to run')
@click.pass_context
def announce(ctx, key, port, local_port, also_lookup, duration):
    """Announce PORT on KEY and print peers."""
    config = ctx.obj['config']
    topic_key = parse_key(key)

    async def run():
        session = await create_session(config)
        topic = session.announce(topic_key, port=port, local_port=local_port,
                                 lookup=also_lookup)
        await _run_topic(session, topic, duration)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@cli.command()
@click.pass_context
def ping(ctx):
    """Ping the bootstrap nodes."""
    config = ctx.obj['config']

    async def run():
        session = await create_session(config)
        try:
            results = await session.ping()
        except DiscoveryError as e:
            console.print(f"[red]✗ {e}[/red]")
            return
        finally:
            await session.destroy()

        table = Table(title="Bootstrap Nodes")
        table.add_column("Node", style="cyan")
        table.add_column("RTT", justify="right", style="yellow")
        for result in results:
            host, node_port = result.bootstrap
            table.add_row(f"{host}:{node_port}", f"{result.rtt:.0f} ms")
        console.print(table)

    asyncio.run(run())


@cli.command()
@click.pass_context
def status(ctx):
    """Show discovery configuration."""
    config = ctx.obj['config']
    bootstrap = "\n".join(f"  {h}:{p}" for h, p in config.bootstrap) or "  (none)"

    console.print(Panel.fit(
        f"[bold]Local Channel[/bold]\n"
        f"  Domain suffix: [cyan]{config.domain}[/cyan]\n"
        f"  Multicast: [yellow]{config.multicast_group}:{config.multicast_port}[/yellow]\n"
        f"  Eager retry: [yellow]{config.eager_interval[0]:.0f}-{config.eager_interval[1]:.0f}s[/yellow]\n\n"
        f"[bold]Global Channel[/bold]\n"
        f"  Ephemeral: [green]{'Yes' if config.ephemeral else 'No'}[/green]\n"
        f"  Lazy retry: [yellow]{config.lazy_interval[0]:.0f}-{config.lazy_interval[1]:.0f}s[/yellow]\n"
        f"  Bootstrap nodes:\n{bootstrap}",
        title="Swarm Discovery Status"
    ))


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
