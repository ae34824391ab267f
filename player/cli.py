import asyncio
from contextlib import nullcontext

import click
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shared.config import PlayerConfig, setup_logging
from shared.errors import CadenceError
from shared.models import RepeatMode, TransportState

# libmpv is a system library; report it instead of crashing at import
try:
    from .mpv_element import MpvMediaElement
    MPV_AVAILABLE = True
except OSError:
    MPV_AVAILABLE = False

from .client import StationClient
from .controls import HELP, drive, key_reader, keyboard_available
from .engine import PlaybackEngine
from .library import LibraryManager
from .session import SessionPersistence

console = Console()


def _fmt(seconds: float) -> str:
    seconds = max(0, int(seconds or 0))
    return f"{seconds // 60}:{seconds % 60:02d}"


def _track_table(title, tracks) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold white")
    table.add_column("Artist", style="green")
    table.add_column("Album", style="yellow")
    table.add_column("Duration", style="magenta")
    for t in tracks:
        table.add_row(t.id[:8], t.title, t.artist, t.album, _fmt(t.duration))
    return table


@click.group()
@click.option('--server', envvar='CADENCE_SERVER_URL', default=None, help='Station URL.')
@click.pass_context
def cli(ctx, server):
    """Cadence music player"""
    config = PlayerConfig.from_env()
    if server:
        config.server_url = server.rstrip('/')
    setup_logging(config.log_level)
    ctx.obj = config


@cli.command(name='list')
@click.pass_obj
def list_tracks(config):
    """List tracks in the catalog."""
    try:
        tracks = LibraryManager(StationClient(config)).refresh()
    except CadenceError as e:
        raise click.ClickException(str(e))
    if not tracks:
        console.print("[yellow]Catalog is empty.[/yellow]")
        return
    console.print(_track_table(f"Catalog ({len(tracks)} tracks)", tracks))


@cli.command()
@click.argument('query')
@click.pass_obj
def search(config, query):
    """Search titles, artists and albums."""
    try:
        results = StationClient(config).search(query)
    except CadenceError as e:
        raise click.ClickException(str(e))
    if not results:
        console.print("[yellow]No matching tracks found.[/yellow]")
        return
    console.print(_track_table(f"Results for '{query}'", results))


@cli.command()
@click.pass_obj
def albums(config):
    """List albums with track counts."""
    try:
        listing = StationClient(config).list_albums()
    except CadenceError as e:
        raise click.ClickException(str(e))
    if not listing:
        console.print("[yellow]Catalog is empty.[/yellow]")
        return
    table = Table(title=f"Albums ({len(listing)})")
    table.add_column("Album", style="bold white")
    table.add_column("Artist", style="green")
    table.add_column("Tracks", style="cyan", justify="right")
    table.add_column("Length", style="magenta")
    for album in listing:
        table.add_row(album["name"], album.get("artist") or "", str(album.get("song_count", 0)),
                      _fmt(album.get("total_duration", 0)))
    console.print(table)


def _now_playing(engine: PlaybackEngine, interactive: bool = False) -> Panel:
    track = engine.current_track
    if track is None:
        return Panel("Nothing playing", title="Now Playing")

    current = engine.position
    total = engine.media.duration or track.duration or 1
    percent = min(100, (current / total) * 100)

    status = Text()
    status.append(f"{track.title}\n", style="bold green")
    status.append(f"{track.artist} - {track.album}\n", style="cyan")
    status.append(f"{_fmt(current)} ", style="cyan")
    status.append("━" * int(percent / 2), style="blue")
    status.append(" " * (50 - int(percent / 2)), style="grey50")
    status.append(f" {_fmt(total)}\n", style="cyan")
    flags = f"{engine.state.value}  vol {int(engine.volume * 100)}%"
    if engine.muted:
        flags += " (muted)"
    flags += f"  shuffle {'on' if engine.shuffle else 'off'}  repeat {engine.repeat_mode.value}"
    status.append(flags, style="grey70")
    if engine.state == TransportState.ERROR and engine.last_error:
        status.append(f"\n{engine.last_error}", style="red")
    return Panel(status, title="Now Playing", subtitle=HELP if interactive else None)


async def _play_session(config: PlayerConfig, playlist, catalog, resume: bool,
                        shuffle: bool, repeat: str) -> None:
    client = StationClient(config)
    media = MpvMediaElement(asyncio.get_running_loop())
    engine = PlaybackEngine(media, client)
    engine.set_shuffle(shuffle)
    engine.repeat_mode = RepeatMode(repeat)
    session = SessionPersistence(engine, scope=config.client_id, state_dir=config.state_dir).attach()

    try:
        restored = resume and await session.restore(catalog)
        if not restored:
            await engine.load_track(playlist[0], playlist)

        interactive = keyboard_available()
        keys: asyncio.Queue = asyncio.Queue()
        reader = key_reader(keys.put_nowait) if interactive else nullcontext()
        with reader, Live(_now_playing(engine, interactive), console=console, refresh_per_second=4) as live:
            await drive(engine, keys, interactive, lambda: live.update(_now_playing(engine, interactive)))

        if engine.state == TransportState.ERROR:
            console.print(f"[red]Playback failed: {engine.last_error}[/red]")
        elif engine.state == TransportState.PAUSED and not interactive:
            console.print("[yellow]Session restored paused; run from a terminal to control playback.[/yellow]")
    finally:
        session.save()
        await engine.drain()
        media.terminate()


@cli.command()
@click.argument('query', required=False)
@click.option('--resume/--no-resume', default=True, help='Continue the last session when no query is given.')
@click.option('--shuffle', is_flag=True, help='Shuffle the queue.')
@click.option('--repeat', type=click.Choice([m.value for m in RepeatMode]), default=RepeatMode.NONE.value)
@click.pass_obj
def play(config, query, resume, shuffle, repeat):
    """Play music. Optionally filter by query."""
    if not MPV_AVAILABLE:
        console.print(Panel.fit(
            "[red bold]Missing System Dependency: libmpv[/red bold]\n\n"
            "The player requires the [cyan]libmpv[/cyan] library to work.\n\n"
            "Please install it:\n"
            "• Ubuntu/Debian: [green]sudo apt install libmpv2[/green]\n"
            "• Fedora: [green]sudo dnf install mpv-libs[/green]\n"
            "• Arch: [green]sudo pacman -S mpv[/green]",
            border_style="red"
        ))
        return

    client = StationClient(config)
    try:
        catalog = LibraryManager(client).refresh()
        playlist = client.search(query) if query else catalog
    except CadenceError as e:
        raise click.ClickException(str(e))

    if not playlist:
        console.print("[yellow]No matching tracks found.[/yellow]")
        return

    try:
        asyncio.run(_play_session(config, playlist, catalog, resume and not query, shuffle, repeat))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")


@cli.command()
@click.option('--port', type=int, default=None, help='Port to listen on.')
@click.option('--debug', is_flag=True, default=False, help='Run Flask in debug mode.')
def serve(port, debug):
    """Run the streaming station."""
    from shared.api import start_api
    from shared.config import ServerConfig

    config = ServerConfig.from_env()
    setup_logging(config.log_level)
    start_api(config, port=port, debug=debug or None)


if __name__ == '__main__':
    cli()
