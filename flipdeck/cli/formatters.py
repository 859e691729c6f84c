"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from flipdeck.core.study import StudySession
from flipdeck.core.sync import SourceReport
from flipdeck.models.flashcards import FlashcardSet
from flipdeck.utils.formatting import describe_image, format_timestamp, truncate


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `flipdeck init <URL> <KEY>` to create a configuration.",
            "• Or set FLIPDECK_REMOTE_URL and FLIPDECK_API_KEY.",
        ],
        "RemoteError": [
            "• The remote store could not be reached or rejected the request.",
            "• Your change was kept in the local cache on this device.",
            "• Run `flipdeck diagnose` to check connectivity.",
        ],
        "RemoteTimeoutError": [
            "• The remote store is responding slowly.",
            "• Check your internet connection and try again.",
        ],
        "SetValidationError": [
            "• Give the set a title and at least one card with content.",
        ],
        "NotStudyableError": [
            "• Add cards with `flipdeck add-card` or `flipdeck import-quiz`.",
        ],
        "QuizParseError": [
            "• Separate each question and answer with a line containing `---`.",
        ],
        "ImageError": [
            "• Use a PNG, JPEG, GIF or WebP file.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "api_key" and value:
            value = f"{str(value)[:8]}… [hidden]"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_sets_table(sets: list[FlashcardSet], online: bool):
    """Lists sets with their card counts and last update."""
    console = Console()
    source = "[green]remote[/green]" if online else "[yellow]offline cache[/yellow]"

    if not sets:
        console.print(f"[dim]No study sets found ({source}).[/dim]")
        return

    table = Table(title=f"Study Sets ({source})", box=box.SIMPLE_HEAVY)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title", style="bold cyan")
    table.add_column("Description")
    table.add_column("Cards", justify="right", style="green")
    table.add_column("Updated", style="magenta")
    for s in sets:
        table.add_row(
            s.id[:8],
            s.title,
            truncate(s.description, 40),
            str(len(s.cards)),
            format_timestamp(s.updated_at),
        )
    console.print(table)


def print_set_detail(flashcard_set: FlashcardSet):
    """Shows a set's metadata and every card."""
    console = Console()
    header = Table(show_header=False, box=None, padding=(0, 2))
    header.add_column(style="bold cyan")
    header.add_column()
    header.add_row("ID:", flashcard_set.id)
    header.add_row("Description:", flashcard_set.description or "[dim]-[/dim]")
    header.add_row("Created:", format_timestamp(flashcard_set.created_at))
    header.add_row("Updated:", format_timestamp(flashcard_set.updated_at))

    cards = Table(box=box.SIMPLE, show_lines=False)
    cards.add_column("#", style="dim", justify="right")
    cards.add_column("Card ID", style="dim", no_wrap=True)
    cards.add_column("Question", style="cyan")
    cards.add_column("Answer", style="green")
    for i, card in enumerate(flashcard_set.cards, 1):
        question = truncate(card.question)
        answer = truncate(card.answer)
        if card.question_image:
            question += f"\n[dim]{describe_image(card.question_image)}[/dim]"
        if card.answer_image:
            answer += f"\n[dim]{describe_image(card.answer_image)}[/dim]"
        cards.add_row(str(i), card.id[:8], question, answer)

    body = Group(header, cards) if flashcard_set.cards else Group(
        header, Text("\nNo cards yet.", style="yellow")
    )
    console.print(
        Panel(body, title=f"[bold]{flashcard_set.title}[/bold]", border_style="cyan")
    )


def render_study_card(session: StudySession, online: bool | None = None) -> Panel:
    """Renders the current card, question or answer side, with progress."""
    card = session.current_card
    if session.is_flipped:
        side, text, image, color = "Answer", card.answer, card.answer_image, "green"
    else:
        side, text, image, color = "Question", card.question, card.question_image, "cyan"

    body = Text(text or "(empty)", style=f"bold {color}", justify="center")
    if image:
        body.append(f"\n\n[{describe_image(image)}]", style="dim")

    status = ""
    if online is not None:
        status = " · [green]online[/green]" if online else " · [yellow]offline[/yellow]"

    return Panel(
        body,
        title=f"{escape(session.flashcard_set.title)} · {side}{status}",
        subtitle=(
            f"Card {session.index + 1} of {session.total} · "
            f"{session.progress:.0f}% · {escape('[n]ext [p]rev [f]lip [r]eset [q]uit')}"
        ),
        border_style=color,
        box=box.ROUNDED,
        padding=(2, 4),
    )


def print_source_report(report: SourceReport):
    """Displays what each data source currently holds."""
    console = Console()
    table = Table(title="Quiz Data Sources", box=box.SIMPLE_HEAVY)
    table.add_column("Source", style="bold")
    table.add_column("Sets", justify="right")
    table.add_column("Titles")

    if report.remote_error:
        table.add_row(
            "[green]Remote (shared)[/green]", "[red]✗[/red]", f"[red]{report.remote_error}[/red]"
        )
    else:
        table.add_row("[green]Remote (shared)[/green]", str(report.remote_count), "")

    for label, sets in (
        ("[blue]Backup cache[/blue]", report.backup_sets),
        ("[yellow]Offline cache[/yellow]", report.offline_sets),
    ):
        titles = ", ".join(truncate(s.title, 20) for s in sets[:5])
        if len(sets) > 5:
            titles += f" (+{len(sets) - 5} more)"
        table.add_row(label, str(len(sets)), titles or "[dim]-[/dim]")

    console.print(table)
