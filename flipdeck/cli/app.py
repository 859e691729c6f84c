"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Prompt

from flipdeck import __version__
from flipdeck.api.client import RemoteStoreClient
from flipdeck.core.connectivity import ConnectivityState, ConnectivityWatcher
from flipdeck.core.editor import (
    edit_details,
    find_card,
    new_card,
    prepare_set,
    remove_card,
    update_card,
)
from flipdeck.core.study import StudySession
from flipdeck.core.sync import SyncOrchestrator
from flipdeck.exceptions import CacheParseError, FlipdeckError, RemoteError
from flipdeck.models.config import AppConfig
from flipdeck.models.flashcards import Card, FlashcardSet
from flipdeck.storage.cache import BACKUP_SLOT, OFFLINE_SLOT, LocalCacheStore
from flipdeck.storage.config_manager import ConfigManager
from flipdeck.utils.formatting import truncate
from flipdeck.utils.images import load_image_as_data_uri
from flipdeck.utils.quiz_parser import parse_quiz_text
from flipdeck.utils.structured_logger import create_structured_logger

from .formatters import (
    print_config,
    print_set_detail,
    print_sets_table,
    print_source_report,
    render_study_card,
)

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("flipdeck")

app = typer.Typer(
    name="flipdeck",
    help=(
        "Flashcard study sets shared through a remote store, with an offline"
        " cache. Use 'flipdeck <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "flipdeck"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"
CACHE_DIR = CONFIG_DIR / "cache"
LOG_DIR = CONFIG_DIR / "logs"


@asynccontextmanager
async def open_orchestrator(config: AppConfig) -> AsyncIterator[SyncOrchestrator]:
    """Wires caches, remote client, connectivity and orchestrator for one command."""
    base_logger, sync_events, remote_events = create_structured_logger(
        LOG_DIR, enable_json=config.json_logs
    )

    def on_corruption(error: CacheParseError) -> None:
        sync_events.cache_corrupted(error.slot, str(error), error.quarantined_to)

    backup = LocalCacheStore(CACHE_DIR, BACKUP_SLOT, on_corruption=on_corruption)
    offline = LocalCacheStore(CACHE_DIR, OFFLINE_SLOT, on_corruption=on_corruption)
    remote = RemoteStoreClient(
        config.remote_url, config.api_key, backup=backup, events=remote_events
    )
    state = ConnectivityState(online=False)
    watcher = ConnectivityWatcher(state, probe=remote.ping, interval=config.probe_interval)
    unsubscribe_remote = state.subscribe(remote.on_connectivity)
    orchestrator = SyncOrchestrator(
        remote,
        offline,
        state,
        load_timeout=config.load_timeout,
        refresh_timeout=config.refresh_timeout,
        backup=backup,
        events=sync_events,
    )

    try:
        await watcher.check_now()
        if not state.is_online:
            console.print("[yellow]⚠️  Offline: using the local cache.[/yellow]")
        # Long-running commands (study) keep checking connectivity and reload on transitions
        orchestrator.start()
        await watcher.start()
        yield orchestrator
    finally:
        await watcher.stop()
        await orchestrator.stop()
        unsubscribe_remote()
        await remote.close()
        base_logger.close()


def _load_config() -> AppConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config()
    except FlipdeckError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e


def _run(coro):
    """Runs a command coroutine, turning application errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except FlipdeckError as e:
        console.print(f"[bold red]✗ {type(e).__name__}: {e}[/bold red]")
        raise typer.Exit(code=1) from e


async def _save(orchestrator: SyncOrchestrator, flashcard_set: FlashcardSet) -> FlashcardSet:
    try:
        return await orchestrator.save_set(flashcard_set)
    except RemoteError:
        console.print(
            "[yellow]⚠️  Saved to the local cache only. The next successful sync "
            "replaces local data, so re-run this command once online.[/yellow]"
        )
        raise


async def _resolve_set(orchestrator: SyncOrchestrator, ref: str) -> FlashcardSet:
    """Finds a set by full id, or by a unique id prefix as shown by `list`."""
    if found := await orchestrator.get_set(ref):
        return found

    matches = [s for s in await orchestrator.load() if s.id.startswith(ref)]
    if len(matches) == 1:
        # Re-read so the cards come from the freshest source
        return await orchestrator.get_set(matches[0].id) or matches[0]
    if len(matches) > 1:
        console.print(f"[red]✗ '{ref}' matches {len(matches)} sets; use more characters.[/red]")
    else:
        console.print(f"[red]✗ No study set with id '{ref}'.[/red]")
    raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear both local cache slots and exit."
    ),
):
    """Flipdeck flashcards CLI"""
    if version:
        console.print(f"[bold]flipdeck[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("flipdeck").setLevel(log_level)

    if clear_cache:
        console.print("[cyan]Clearing local cache...[/cyan]")
        cleared = [
            LocalCacheStore(CACHE_DIR, slot).clear() for slot in (BACKUP_SLOT, OFFLINE_SLOT)
        ]
        if all(cleared):
            console.print("[green]✓ Cache cleared successfully.[/green]")
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]flipdeck init[/cyan] first."
            )
            raise typer.Exit(code=1)
        print_config(CONFIG_FILE, ConfigManager(CONFIG_FILE).get_display_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    remote_url: str = typer.Argument(..., help="Base URL of the remote store."),
    api_key: str = typer.Argument(..., help="Access key for the remote store."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Initialize configuration with the remote store endpoint and key."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config({"remote_url": remote_url, "api_key": api_key})
    try:
        config_manager.load_config()
    except FlipdeckError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Check the connection with: [cyan]flipdeck diagnose[/cyan]")


@app.command(name="list")
def list_command(
    refresh: bool = typer.Option(
        False, "--refresh", "-r", help="Use the shorter refresh deadline."
    ),
):
    """List all study sets."""
    config = _load_config()

    async def _list():
        async with open_orchestrator(config) as orchestrator:
            sets = await (orchestrator.refresh() if refresh else orchestrator.load())
            print_sets_table(sets, orchestrator.is_online)

    _run(_list())


@app.command()
def show(set_id: str = typer.Argument(..., help="Set id or unique id prefix.")):
    """Show a study set and its cards."""
    config = _load_config()

    async def _show():
        async with open_orchestrator(config) as orchestrator:
            print_set_detail(await _resolve_set(orchestrator, set_id))

    _run(_show())


def _parse_inline_card(raw: str) -> Card:
    question, sep, answer = raw.partition("::")
    if not sep:
        console.print(f"[red]✗ Card '{raw}' must look like 'question::answer'.[/red]")
        raise typer.Exit(code=1)
    return new_card(question.strip(), answer.strip())


@app.command()
def create(
    title: str = typer.Argument(..., help="Title of the new set."),
    description: str = typer.Option("", "--description", "-d"),
    cards: list[str] = typer.Option(  # noqa: B008
        [], "--card", "-c", help="A card as 'question::answer'. Repeatable."
    ),
    quiz_file: Path | None = typer.Option(  # noqa: B008
        None, "--quiz", "-q", help="Import cards from a '---' separated text file."
    ),
):
    """Create a new study set."""
    config = _load_config()
    new_cards = [_parse_inline_card(c) for c in cards]
    if quiz_file:
        new_cards.extend(parse_quiz_text(quiz_file.read_text(encoding="utf-8")))

    async def _create():
        flashcard_set = prepare_set(title, description, new_cards)
        async with open_orchestrator(config) as orchestrator:
            saved = await _save(orchestrator, flashcard_set)
        console.print(
            f"[green]✓ Study set '{saved.title}' created with {len(saved.cards)} cards "
            f"([dim]{saved.id}[/dim]).[/green]"
        )

    _run(_create())


async def _change_set(
    config: AppConfig, set_id: str, change: Callable[[FlashcardSet], FlashcardSet]
) -> FlashcardSet:
    """Loads a set, applies `change` to it and saves the full result."""
    async with open_orchestrator(config) as orchestrator:
        existing = await _resolve_set(orchestrator, set_id)
        return await _save(orchestrator, change(existing))


async def _append_cards(config: AppConfig, set_id: str, cards: list[Card]) -> None:
    saved = await _change_set(
        config,
        set_id,
        lambda existing: prepare_set(
            existing.title,
            existing.description,
            existing.cards + cards,
            existing=existing,
        ),
    )
    console.print(
        f"[green]✓ {len(cards)} card(s) added; '{saved.title}' now has "
        f"{len(saved.cards)} cards.[/green]"
    )


@app.command(name="add-card")
def add_card(
    set_id: str = typer.Argument(..., help="Set id or unique id prefix."),
    question: str = typer.Option(..., "--question", "-q"),
    answer: str = typer.Option(..., "--answer", "-a"),
    question_image: Path | None = typer.Option(None, "--question-image"),  # noqa: B008
    answer_image: Path | None = typer.Option(None, "--answer-image"),  # noqa: B008
):
    """Add one card, optionally with images, to an existing set."""
    config = _load_config()

    async def _add():
        card = new_card(
            question,
            answer,
            question_image=load_image_as_data_uri(question_image) if question_image else None,
            answer_image=load_image_as_data_uri(answer_image) if answer_image else None,
        )
        await _append_cards(config, set_id, [card])

    _run(_add())


@app.command(name="import-quiz")
def import_quiz(
    set_id: str = typer.Argument(..., help="Set id or unique id prefix."),
    quiz_file: Path = typer.Argument(..., help="Text file with '---' separated Q/A."),  # noqa: B008
):
    """Append cards parsed from speed-quiz text to an existing set."""
    config = _load_config()

    async def _import():
        cards = parse_quiz_text(quiz_file.read_text(encoding="utf-8"))
        console.print(f"[cyan]Parsed {len(cards)} flashcard(s).[/cyan]")
        await _append_cards(config, set_id, cards)

    _run(_import())


@app.command()
def edit(
    set_id: str = typer.Argument(..., help="Set id or unique id prefix."),
    title: str | None = typer.Option(None, "--title", "-t", help="New title."),
    description: str | None = typer.Option(
        None, "--description", "-d", help="New description (empty string clears it)."
    ),
):
    """Change a set's title or description."""
    if title is None and description is None:
        console.print("[yellow]Nothing to change; pass --title and/or --description.[/yellow]")
        raise typer.Exit(code=1)
    config = _load_config()

    async def _edit():
        saved = await _change_set(
            config,
            set_id,
            lambda existing: edit_details(existing, title=title, description=description),
        )
        console.print(f"[green]✓ Study set '{saved.title}' updated.[/green]")

    _run(_edit())


def _image_change(path: Path | None, remove: bool) -> str | None:
    """New image value: a data URI, "" to drop the image, or None to keep it."""
    if remove:
        return ""
    return load_image_as_data_uri(path) if path else None


@app.command(name="update-card")
def update_card_command(
    set_id: str = typer.Argument(..., help="Set id or unique id prefix."),
    card_id: str = typer.Argument(..., help="Card id or unique id prefix, as shown by 'show'."),
    question: str | None = typer.Option(None, "--question", "-q"),
    answer: str | None = typer.Option(None, "--answer", "-a"),
    question_image: Path | None = typer.Option(None, "--question-image"),  # noqa: B008
    answer_image: Path | None = typer.Option(None, "--answer-image"),  # noqa: B008
    remove_question_image: bool = typer.Option(False, "--remove-question-image"),
    remove_answer_image: bool = typer.Option(False, "--remove-answer-image"),
):
    """Change one card's text or images."""
    config = _load_config()

    async def _update():
        changes = {
            "question": question,
            "answer": answer,
            "question_image": _image_change(question_image, remove_question_image),
            "answer_image": _image_change(answer_image, remove_answer_image),
        }
        saved = await _change_set(
            config, set_id, lambda existing: update_card(existing, card_id, **changes)
        )
        console.print(f"[green]✓ Card updated in '{saved.title}'.[/green]")

    _run(_update())


@app.command(name="remove-card")
def remove_card_command(
    set_id: str = typer.Argument(..., help="Set id or unique id prefix."),
    card_id: str = typer.Argument(..., help="Card id or unique id prefix, as shown by 'show'."),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation."),
):
    """Remove one card from a set."""
    config = _load_config()

    def _remove(existing: FlashcardSet) -> FlashcardSet:
        target = find_card(existing, card_id)
        if not force and not typer.confirm(
            f"Remove the card '{truncate(target.question, 40)}'?"
        ):
            raise typer.Abort()
        return remove_card(existing, target.id)

    async def _run_remove():
        saved = await _change_set(config, set_id, _remove)
        console.print(
            f"[green]✓ Card removed; '{saved.title}' now has {len(saved.cards)} cards.[/green]"
        )

    _run(_run_remove())


@app.command()
def delete(
    set_id: str = typer.Argument(..., help="Set id or unique id prefix."),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation."),
):
    """Delete a study set and all of its cards."""
    config = _load_config()

    async def _delete():
        async with open_orchestrator(config) as orchestrator:
            target = await _resolve_set(orchestrator, set_id)
            if not force and not typer.confirm(
                f"Delete '{target.title}' and its {len(target.cards)} cards?"
            ):
                raise typer.Abort()
            await orchestrator.delete_set(target.id)
        console.print(f"[green]✓ Study set '{target.title}' deleted.[/green]")

    _run(_delete())


@app.command()
def study(set_id: str = typer.Argument(..., help="Set id or unique id prefix.")):
    """Study a set card by card."""
    config = _load_config()

    async def _study() -> StudySession:
        async with open_orchestrator(config) as orchestrator:
            session = StudySession(await _resolve_set(orchestrator, set_id))
            # Prompts run in a thread so background connectivity checks keep running
            while True:
                console.clear()
                console.print(render_study_card(session, orchestrator.is_online))
                action = await asyncio.to_thread(
                    Prompt.ask,
                    "",
                    choices=["n", "p", "f", "r", "q"],
                    default="f",
                    show_choices=False,
                )
                if action == "q":
                    break
                if action == "f":
                    session.flip()
                elif action == "n" and not session.next():
                    console.print("[green]✓ That was the last card.[/green]")
                    if not await asyncio.to_thread(
                        typer.confirm, "Start over?", default=False
                    ):
                        break
                    session.reset()
                elif action == "p":
                    session.previous()
                elif action == "r":
                    session.reset()
            return session

    session = _run(_study())
    console.print(
        f"[cyan]Studied {len(session.cards_seen)} of {session.total} cards.[/cyan]"
    )


@app.command()
def sources():
    """Show what the remote store and both local cache slots hold."""
    config = _load_config()

    async def _sources():
        async with open_orchestrator(config) as orchestrator:
            print_source_report(await orchestrator.inspect_sources())

    _run(_sources())


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration is valid and can be loaded.")
    except FlipdeckError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"\n[dim]Testing connectivity to {config.remote_url}...[/dim]")

    async def test_connection() -> bool:
        async with RemoteStoreClient(config.remote_url, config.api_key) as remote:
            if await remote.ping():
                console.print("[green]✓[/] Successfully queried the remote store.")
                return True
            console.print("[red]✗ Could not query the remote store.[/red]")
            return False

    if not asyncio.run(test_connection()):
        issues_found = True

    for slot in (BACKUP_SLOT, OFFLINE_SLOT):
        cache = LocalCacheStore(CACHE_DIR, slot)
        console.print(f"[green]✓[/] Cache slot '{slot}' holds {len(cache.list())} sets.")
        if cache.path.with_suffix(".json.corrupt").exists():
            console.print(
                f"[yellow]⚠️  A corrupt copy of '{slot}' was set aside; "
                "inspect or delete it.[/yellow]"
            )
            issues_found = True

    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
