"""CLI interface for echojournal."""

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Annotated, NoReturn, Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from echojournal.analysis import AnalysisPipeline
from echojournal.config import EchoJournalConfig, load_config, merge_cli_overrides
from echojournal.conversation import (
    ConnectivityMonitor,
    FollowUpLoopController,
    LatencyMonitor,
    LoopPhase,
)
from echojournal.conversation.capture import TypedAnswerCapture
from echojournal.conversation.synthesizer import ClaudeGenerationService
from echojournal.conversation.transcription import (
    PlainTextTranscriptionService,
    WhisperTranscriptionService,
)
from echojournal.errors import EchoJournalError, EntryNotFoundError, PipelineReport
from echojournal.journal import (
    JournalEntry,
    JournalStore,
    create_journal_entry,
    next_milestone,
    overall_feeling,
    overall_highest_streak,
    recalculate_streaks,
)
from echojournal.journal.insights import entry_days_for_month, insights_from_store
from echojournal.journal.models import MessageRole, parse_category
from echojournal.journal.streaks import current_streak

app = typer.Typer(
    name="echojournal",
    help="Voice journaling with AI follow-up questions and reflection.",
)
tag_app = typer.Typer(help="Add or remove tags on an entry.")
app.add_typer(tag_app, name="tag")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from echojournal import __version__

        console.print(f"echojournal {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    store_dir: Annotated[
        Optional[Path],
        typer.Option("--store-dir", help="Directory holding journal.json."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", help="Path to an .echojournal.toml file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """EchoJournal - reflect on your day, one question at a time."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(config_path)
    ctx.obj = merge_cli_overrides(
        config, store_dir=str(store_dir) if store_dir is not None else None
    )


def _config(ctx: typer.Context) -> EchoJournalConfig:
    if isinstance(ctx.obj, EchoJournalConfig):
        return ctx.obj
    return load_config()


def _open_store(ctx: typer.Context) -> JournalStore:
    return JournalStore(_config(ctx).store.path)


def _resolve_entry(store: JournalStore, ref: str) -> JournalEntry:
    """Find an entry by full id, unique id prefix, or ``latest``."""
    entries = store.list_entries()
    if ref == "latest":
        if not entries:
            raise EntryNotFoundError("No journal entries yet")
        return entries[-1]
    try:
        return store.require_entry(UUID(ref))
    except ValueError:
        pass
    matches = [e for e in entries if str(e.id).startswith(ref.lower())]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise EntryNotFoundError(f"No entry matches {ref!r}")
    raise EntryNotFoundError(f"Entry id {ref!r} is ambiguous ({len(matches)} matches)")


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


@app.command()
def record(
    ctx: typer.Context,
    text: Annotated[
        Optional[str],
        typer.Argument(help="Entry text. Omit when using --audio."),
    ] = None,
    audio: Annotated[
        Optional[Path],
        typer.Option("--audio", help="Audio file to transcribe with Whisper."),
    ] = None,
    whisper_model: Annotated[
        Optional[str],
        typer.Option("--whisper-model", help="Whisper model size (e.g. base, small)."),
    ] = None,
) -> None:
    """Create a journal entry from text or an audio recording."""
    config = merge_cli_overrides(_config(ctx), whisper_model=whisper_model)
    store = JournalStore(config.store.path)

    audio_ref: str | None = None
    if audio is not None:
        if not audio.exists():
            _fail(f"Audio file not found: {audio}")
        service = WhisperTranscriptionService(config.transcription)
        try:
            with console.status("Transcribing..."):
                text = asyncio.run(service.transcribe(audio.read_bytes()))
        except EchoJournalError as exc:
            _fail(str(exc))
        audio_ref = str(audio.resolve())

    if not text or not text.strip():
        _fail("Nothing to record: provide entry text or --audio.")

    try:
        entry = create_journal_entry(store, text, audio_ref=audio_ref)
    except EchoJournalError as exc:
        _fail(str(exc))

    console.print(f"[green]Recorded entry {str(entry.id)[:8]}[/green]")
    console.print(f"  Streak: {entry.current_streak} (best {entry.highest_streak})")


async def _run_followup(
    controller: FollowUpLoopController, entry: JournalEntry, answers: list[str]
) -> None:
    await controller.start(entry)
    try:
        while controller.state.phase is LoopPhase.SHOWING_QUESTION:
            console.print(f"\n[bold cyan]{escape(controller.current_question)}[/bold cyan]")
            await controller.begin_answer_capture()
            answer = console.input("[bold]You:[/bold] ")
            if not answer.strip():
                await controller.end_externally()
                break
            answers.append(answer)
            await controller.begin_recording()
            with console.status("Thinking..."):
                await controller.end_recording_and_process()
            if controller.is_experiencing_high_latency:
                console.print("[yellow]Responses are slow; your network may be degraded.[/yellow]")
    finally:
        await controller.aclose()


@app.command()
def followup(
    ctx: typer.Context,
    entry_ref: Annotated[
        str,
        typer.Argument(help="Entry id, id prefix, or 'latest'."),
    ] = "latest",
    model: Annotated[
        Optional[str],
        typer.Option("--model", help="Model for question generation."),
    ] = None,
) -> None:
    """Answer AI follow-up questions about an entry (blank answer ends)."""
    config = merge_cli_overrides(_config(ctx), model=model)
    store = JournalStore(config.store.path)
    try:
        entry = _resolve_entry(store, entry_ref)
    except EntryNotFoundError as exc:
        _fail(str(exc))

    answers: list[str] = []
    generation = ClaudeGenerationService(config.generation)
    connectivity = ConnectivityMonitor()
    connectivity.probe()
    controller = FollowUpLoopController(
        store=store,
        generation=generation,
        transcription=PlainTextTranscriptionService(),
        capture=TypedAnswerCapture(lambda: answers.pop(0) if answers else ""),
        connectivity=connectivity,
        config=config.conversation,
        latency=LatencyMonitor(
            window_size=config.latency.window_size,
            threshold_seconds=config.latency.threshold_seconds,
        ),
        pipeline=AnalysisPipeline(store, generation, max_tags=config.analysis.max_tags),
    )
    asyncio.run(_run_followup(controller, entry, answers))

    state = controller.state
    if state.phase is LoopPhase.ERROR:
        _fail(state.message or "Follow-up session failed.")

    console.print("\n[bold green]Session complete.[/bold green]")
    _print_report(controller.last_report)
    _print_entry(store, store.require_entry(entry.id))


def _print_report(report: Optional[PipelineReport]) -> None:
    if report is None:
        return
    for err in report.errors:
        console.print(f"[yellow]Analysis {err.stage} failed:[/yellow] {escape(err.message)}")


@app.command()
def analyze(
    ctx: typer.Context,
    entry_ref: Annotated[
        str,
        typer.Argument(help="Entry id, id prefix, or 'latest'."),
    ] = "latest",
    max_tags: Annotated[
        Optional[int],
        typer.Option("--max-tags", min=1, help="Maximum number of tags to extract."),
    ] = None,
) -> None:
    """Re-run tags, emotions and summary for an entry."""
    config = merge_cli_overrides(_config(ctx), max_tags=max_tags)
    store = JournalStore(config.store.path)
    try:
        entry = _resolve_entry(store, entry_ref)
    except EntryNotFoundError as exc:
        _fail(str(exc))

    pipeline = AnalysisPipeline(
        store, ClaudeGenerationService(config.generation), max_tags=config.analysis.max_tags
    )
    with console.status("Analyzing..."):
        report = asyncio.run(pipeline.run(entry.id))
    _print_report(report)
    _print_entry(store, store.require_entry(entry.id))
    if not report.ok:
        raise typer.Exit(1)


def _print_entry(store: JournalStore, entry: JournalEntry) -> None:
    feelings = store.feelings_for(entry.id)
    overall = overall_feeling(entry, feelings)

    console.print(f"\n[bold]{escape(entry.title)}[/bold]  [dim]{entry.id}[/dim]")
    console.print(f"  Created: {entry.created_at:%Y-%m-%d %H:%M}")
    console.print(f"  Streak: {entry.current_streak} (best {entry.highest_streak})")
    if entry.tags:
        console.print(f"  Tags: {', '.join('#' + t for t in entry.tags)}")
    if overall is not None:
        names = ", ".join(f.name for f in feelings)
        console.print(f"  Feeling: {overall.value}" + (f" ({names})" if names else ""))
    if entry.summary:
        console.print(f"\n{escape(entry.summary)}")
    console.print(f"\n[dim]Transcript:[/dim] {escape(entry.transcript)}")

    for message in store.messages_for(entry.id):
        speaker = "Q" if message.role is MessageRole.ASSISTANT else "A"
        console.print(f"  [dim]{speaker}:[/dim] {escape(message.text)}")


@app.command()
def show(
    ctx: typer.Context,
    entry_ref: Annotated[
        str,
        typer.Argument(help="Entry id, id prefix, or 'latest'."),
    ] = "latest",
) -> None:
    """Show an entry with its conversation and analysis."""
    store = _open_store(ctx)
    try:
        entry = _resolve_entry(store, entry_ref)
    except EntryNotFoundError as exc:
        _fail(str(exc))
    _print_entry(store, entry)


@app.command(name="list")
def list_cmd(
    ctx: typer.Context,
    month: Annotated[
        Optional[str],
        typer.Option("--month", help="Only days of this month (YYYY-MM)."),
    ] = None,
) -> None:
    """List journal entries, newest first."""
    store = _open_store(ctx)
    entries = store.list_entries()

    if month is not None:
        try:
            year_str, month_str = month.split("-")
            year, month_num = int(year_str), int(month_str)
            date(year, month_num, 1)
        except ValueError:
            _fail(f"Invalid month: {month}. Use YYYY-MM format (e.g., 2024-01)")
        entries = list(entry_days_for_month(entries, year, month_num).values())

    if not entries:
        console.print("[yellow]No journal entries found.[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Journal entries")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("Feeling")
    for entry in reversed(entries):
        overall = overall_feeling(entry, store.feelings_for(entry.id))
        table.add_row(
            str(entry.id)[:8],
            f"{entry.created_at:%Y-%m-%d %H:%M}",
            escape(entry.title),
            overall.value if overall else "",
        )
    console.print(table)


@app.command()
def streak(
    ctx: typer.Context,
    recalculate: Annotated[
        bool,
        typer.Option("--recalculate", help="Rewrite stored streaks from history."),
    ] = False,
) -> None:
    """Show the current and best journaling streak."""
    store = _open_store(ctx)
    if recalculate:
        changed = recalculate_streaks(store)
        console.print(f"Updated {changed} entr{'y' if changed == 1 else 'ies'}.")

    entries = store.list_entries()
    current = current_streak(e.created_at for e in entries)
    highest = max(overall_highest_streak(entries), current)
    console.print(f"Current streak: [bold]{current}[/bold] day(s)")
    console.print(f"Best streak: {highest} day(s)")
    console.print(f"Next milestone: {next_milestone(current)} day(s)")


@app.command()
def insights(ctx: typer.Context) -> None:
    """Weekly activity, top feelings and common tags."""
    store = _open_store(ctx)
    result = insights_from_store(store)
    console.print(f"Entries this week: [bold]{result.weekly_entry_count}[/bold]")
    feelings = ", ".join(f.value for f in result.top_feelings) or "none yet"
    console.print(f"Top feelings: {feelings}")
    tags = ", ".join("#" + t for t in result.common_tags) or "none yet"
    console.print(f"Common tags: {tags}")


@tag_app.command("add")
def tag_add(
    ctx: typer.Context,
    entry_ref: Annotated[str, typer.Argument(help="Entry id, id prefix, or 'latest'.")],
    tag: Annotated[str, typer.Argument(help="Tag to add.")],
) -> None:
    """Add a tag to an entry."""
    store = _open_store(ctx)
    try:
        entry = _resolve_entry(store, entry_ref)
        tags = store.add_tag(entry.id, tag)
    except (EchoJournalError, ValueError) as exc:
        _fail(str(exc))
    console.print(f"Tags: {', '.join(tags)}")


@tag_app.command("remove")
def tag_remove(
    ctx: typer.Context,
    entry_ref: Annotated[str, typer.Argument(help="Entry id, id prefix, or 'latest'.")],
    tag: Annotated[str, typer.Argument(help="Tag to remove.")],
) -> None:
    """Remove a tag from an entry."""
    store = _open_store(ctx)
    try:
        entry = _resolve_entry(store, entry_ref)
        tags = store.remove_tag(entry.id, tag)
    except EchoJournalError as exc:
        _fail(str(exc))
    console.print(f"Tags: {', '.join(tags) or '(none)'}")


@app.command()
def feel(
    ctx: typer.Context,
    entry_ref: Annotated[str, typer.Argument(help="Entry id, id prefix, or 'latest'.")],
    category: Annotated[
        str,
        typer.Argument(help="Great, Good, Fine, Bad, Terrible, or 'clear'."),
    ],
) -> None:
    """Override the overall feeling of an entry."""
    store = _open_store(ctx)
    try:
        entry = _resolve_entry(store, entry_ref)
        value = None if category.lower() == "clear" else parse_category(category)
        entry = store.set_user_feeling(entry.id, value)
    except (EchoJournalError, ValueError) as exc:
        _fail(str(exc))
    overall = overall_feeling(entry, store.feelings_for(entry.id))
    console.print(f"Feeling: {overall.value if overall else '(none)'}")
