"""Interactive CLI application."""
import logging
import os
import threading
import time

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from qbank_tutor.controller import SessionController
from qbank_tutor.dashboard import get_readiness_color, get_tag_scores, overview_stats
from qbank_tutor.db import (
    DEFAULT_DB_PATH, DEFAULT_HOME, get_bool_setting, get_folder_paths, get_int_setting,
    init_db, remove_folder_path, set_setting,
)
from qbank_tutor.errors import QbankError
from qbank_tutor.importer import import_folder
from qbank_tutor.userstore import remove_legacy_snapshot

console = Console()

EXAM_HELP = "letter to answer, [cyan]next[/cyan], [cyan]back[/cyan], [cyan]flag[/cyan], " \
            "[cyan]pause[/cyan], [cyan]submit[/cyan], [cyan]quit[/cyan]"
STATUS_STYLES = {"complete": "[green]Complete[/green]", "paused": "[cyan]Paused[/cyan]"}


class SessionExitRequested(Exception):
    """Raised when the user types 'q' or 'menu' at a prompt."""


def session_prompt(prompt: str, **kwargs) -> str:
    value = Prompt.ask(prompt, **kwargs)
    if value.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return value


def session_int_prompt(prompt: str, **kwargs) -> int:
    return int(session_prompt(prompt, **kwargs))


def configure_logging() -> None:
    level = logging.INFO if os.environ.get("QBANK_TUTOR_DEBUG") == "1" else logging.WARNING
    logging.basicConfig(
        level=level, format="%(message)s", datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def show_welcome():
    console.print(Panel(
        "[bold]Question Bank Tutor[/bold]\n[dim]Practice blocks and progress tracking[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu(controller: SessionController):
    loaded = controller.dataset.path if controller.dataset else "none"
    console.print(f"\n[bold]Commands:[/bold] [dim](bank: {loaded})[/dim]")
    commands = [
        ("banks", "List question banks"),
        ("add", "Add a question bank folder"),
        ("load", "Load a question bank"),
        ("overview", "Progress overview"),
        ("new", "Start a new block"),
        ("blocks", "Previous blocks"),
        ("open", "Resume or review a block"),
        ("delete", "Delete a block"),
        ("reset", "Reset all progress for this bank"),
        ("settings", "Timed mode and answer display"),
        ("forget", "Remove a bank from the list"),
        ("logout", "Forget this user"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<10}[/cyan] {desc}")


def run_block(controller: SessionController, block_id: str) -> str:
    """Drive one block until it is paused or submitted. Returns the end state."""
    block = controller.open_block(block_id)
    dataset = controller.dataset
    answers = list(block.answers)
    flagged = set(block.flagged)
    index = block.current_question
    started = time.monotonic()
    total = len(block.question_ids)

    def elapsed():
        return round(block.elapsed_time + time.monotonic() - started, 1)

    def state():
        return {"answers": answers, "elapsed_time": elapsed(), "flagged": sorted(flagged)}

    console.print(f"\n[bold]Block {block_id}[/bold] - {total} questions ({block.pool_label})")
    console.print(f"[dim]{EXAM_HELP}[/dim]\n")
    try:
        while True:
            if 0 < block.time_limit <= elapsed():
                console.print("[yellow]Time is up.[/yellow]")
                choice = "submit"
            else:
                qid = block.question_ids[index]
                options = dataset.options(qid)
                marker = " [red]⚑[/red]" if qid in flagged else ""
                current = f" [green]{answers[index]}[/green]" if answers[index] else ""
                console.print(f"[bold]Q{index + 1}/{total}[/bold] id {qid}{marker}"
                              f"  options: {' '.join(options) or '-'}{current}")
                choice = Prompt.ask("[bold]>[/bold]", default="next").strip()

            command = choice.lower()
            if len(choice) == 1 and choice.upper() in options:
                answers[index] = choice.upper()
                if block.show_answers:
                    correct = dataset.correct_answer(qid)
                    color = "green" if correct == answers[index] else "red"
                    console.print(f"[{color}]Correct answer: {correct}[/{color}]")
                index = min(index + 1, total - 1)
            elif command == "next":
                index = min(index + 1, total - 1)
            elif command == "back":
                index = max(index - 1, 0)
            elif command == "flag":
                flagged.symmetric_difference_update({qid})
            elif command in ("pause", "quit"):
                if command == "quit":
                    controller.request_shutdown()
                controller.pause_block(block_id, current_question=index, **state())
                console.print("[dim]Block paused.[/dim]")
                return "paused"
            elif command == "submit":
                done = controller.complete_block(block_id, **state())
                pct = done.num_correct / total * 100
                console.print(f"[bold]Score: {done.num_correct}/{total} ({pct:.0f}%)[/bold]\n")
                return "complete"
            else:
                console.print(f"[red]Unknown input.[/red] [dim]{EXAM_HELP}[/dim]")
    finally:
        # Leaving the exam view by any path releases the open block.
        controller.close_block(block_id)


def review_block(controller: SessionController, block_id: str):
    block = controller.progress.history.get(block_id)
    table = Table(title=f"Block {block_id} review")
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Answer")
    table.add_column("Correct")
    for i, (qid, answer) in enumerate(zip(block.question_ids, block.answers), 1):
        correct = controller.dataset.correct_answer(qid)
        color = "green" if answer == correct else "red"
        table.add_row(str(i), qid, f"[{color}]{answer or '-'}[/{color}]", correct)
    console.print(table)


def cmd_banks(db_path: str):
    paths = get_folder_paths(db_path)
    if not paths:
        console.print("[yellow]No question banks yet. Use 'add'.[/yellow]")
        return
    for i, path in enumerate(paths, 1):
        console.print(f"  [cyan]{i}[/cyan] {path}")


def cmd_add(db_path: str):
    folder = Prompt.ask("Folder path")
    report = import_folder(db_path, folder)
    console.print(f"[green]Found {report['questions']} questions in {report['path']}[/green]")
    if report["generated"]:
        console.print(f"[dim]Generated {', '.join(report['generated'])}[/dim]")
    if report["omitted"]:
        console.print(f"[red]Omitted (no solution file): {', '.join(report['omitted'])}[/red]")
    for problem, qids in report["problems"].items():
        if qids:
            console.print(f"[red]{problem.replace('_', ' ')}: {', '.join(qids)}[/red]")
    if report["has_progress_file"] and not Confirm.ask(
        "Progress file found. Keep using it?", default=True
    ):
        remove_legacy_snapshot(report["path"])
        console.print("[dim]Deleted progress.json - question bank has been reset[/dim]")


def cmd_load(controller: SessionController):
    paths = get_folder_paths(controller.db_path)
    if not paths:
        console.print("[yellow]No question banks yet. Use 'add'.[/yellow]")
        return
    cmd_banks(controller.db_path)
    choice = IntPrompt.ask("Bank number", choices=[str(i) for i in range(1, len(paths) + 1)])
    progress = controller.load_dataset(paths[choice - 1])
    console.print(f"[green]Loaded {len(progress.dataset)} questions, "
                  f"{len(progress.history)} previous blocks.[/green]")


def cmd_overview(controller: SessionController):
    stats = overview_stats(controller.progress)
    hours, minutes, seconds = stats["total_time"]
    console.print(Panel(
        f"Correct: [bold]{stats['correct']}[/bold] ({stats['correct_pct']}%)   "
        f"Incorrect: [bold]{stats['incorrect']}[/bold] ({stats['incorrect_pct']}%)   "
        f"Answered: [bold]{stats['total_answered']}[/bold]\n"
        f"Used: [bold]{stats['seen']}/{stats['total_questions']}[/bold] ({stats['seen_pct']}%)   "
        f"Flagged: [bold]{stats['flagged']}/{stats['seen']}[/bold] ({stats['flagged_pct']}%)\n"
        f"Blocks: [bold]{stats['complete_blocks']}[/bold] complete, "
        f"[bold]{stats['paused_blocks']}[/bold] paused   "
        f"Avg time: [bold]{stats['avg_time']} sec[/bold]   "
        f"Total: {hours} hours, {minutes} minutes, {seconds} seconds",
        title="Overview", border_style="blue",
    ))
    for dimension in controller.dataset.taxonomy:
        table = Table(title=dimension)
        table.add_column("Tag", style="cyan")
        table.add_column("Questions", justify="right")
        table.add_column("Seen", justify="right")
        table.add_column("Incorrect", justify="right")
        table.add_column("Flagged", justify="right")
        table.add_column("Score", justify="right")
        for row in get_tag_scores(controller.progress, dimension):
            color = get_readiness_color(row["score"])
            table.add_row(row["tag"], str(row["total"]), str(row["seen"]),
                          str(row["incorrects"]), str(row["flagged"]),
                          f"[{color}]{row['score']}%[/{color}]")
        console.print(table)


def cmd_new(controller: SessionController):
    progress = controller.progress
    pool = session_prompt("Question pool", choices=["unused", "incorrects", "flagged", "all"],
                          default="unused")
    dimension = progress.dataset.taxonomy.dimensions[0]
    values = list(progress.buckets.buckets[dimension])
    console.print(f"[dim]{dimension}: {', '.join(values)}[/dim]")
    raw = session_prompt(f"{dimension} values (comma separated, blank for all)", default="")
    chosen = [v.strip() for v in raw.split(",") if v.strip()]
    tags = {dimension: chosen} if chosen else None
    available = len(progress.buckets.pool_ids(pool, tags))
    if not available:
        console.print("[yellow]No questions available in that pool![/yellow]")
        return
    count = session_int_prompt(f"Number of questions (max {available})", default=str(min(10, available)))
    question_ids = progress.buckets.select(pool, count, tags)
    tags_chosen = f"{dimension}: {', '.join(chosen)}" if chosen else "All"
    block_id = controller.start_block(question_ids, pool, tags_chosen=tags_chosen,
                                      all_subtags_enabled=not chosen)
    run_block(controller, block_id)


def cmd_blocks(controller: SessionController):
    history = controller.progress.history
    if not len(history):
        console.print("[yellow]No blocks yet.[/yellow]")
        return
    table = Table(title="Previous Blocks")
    table.add_column("Id", justify="right")
    table.add_column("Started")
    table.add_column("Pool")
    table.add_column("Tags")
    table.add_column("Questions", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    for block_id, block in history:
        score = f"{block.num_correct}/{len(block.question_ids)}" if block.complete else ""
        status = STATUS_STYLES[block.status]
        table.add_row(block_id, block.start_time, block.pool_label, block.tags_chosen or "",
                      str(len(block.question_ids)), score, status)
    console.print(table)


def cmd_open(controller: SessionController):
    block_id = session_prompt("Block id")
    block = controller.progress.history.get(block_id)
    if block.complete:
        review_block(controller, block_id)
    else:
        run_block(controller, block_id)


def cmd_delete(controller: SessionController):
    block_id = session_prompt("Block id")
    controller.progress.history.get(block_id)
    if Confirm.ask(f"Delete block {block_id} and return its questions to unused?", default=False):
        controller.delete_block(block_id)
        console.print(f"[green]Deleted block {block_id}.[/green]")


def cmd_reset(controller: SessionController):
    def confirm():
        return Confirm.ask(
            "Are you sure you want to delete all progress and reset this qbank?", default=False
        )

    if controller.reset_bank(confirm):
        console.print("[green]Question bank reset.[/green]")


def cmd_settings(db_path: str):
    timed = Confirm.ask("Timed mode?", default=get_bool_setting(db_path, "timed"))
    set_setting(db_path, "timed", "1" if timed else "0")
    if timed:
        seconds = IntPrompt.ask("Seconds per question",
                                default=get_int_setting(db_path, "time_per_question", 90))
        set_setting(db_path, "time_per_question", str(max(seconds, 1)))
    show = Confirm.ask("Show the answer right after answering?",
                       default=get_bool_setting(db_path, "show_answers"))
    set_setting(db_path, "show_answers", "1" if show else "0")


def main():
    configure_logging()
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    stopped = threading.Event()
    controller = SessionController(db_path, DEFAULT_HOME, on_shutdown=stopped.set)

    show_welcome()
    needs_bank = {"overview", "new", "blocks", "open", "delete", "reset"}
    while not stopped.is_set():
        show_menu(controller)
        choice = Prompt.ask("\n[bold]>[/bold]", default="banks").strip().lower()
        try:
            if choice in needs_bank and controller.progress is None:
                console.print("[yellow]Load a question bank first.[/yellow]")
            elif choice == "banks":
                cmd_banks(db_path)
            elif choice == "add":
                cmd_add(db_path)
            elif choice == "load":
                cmd_load(controller)
            elif choice == "overview":
                cmd_overview(controller)
            elif choice == "new":
                cmd_new(controller)
            elif choice == "blocks":
                cmd_blocks(controller)
            elif choice == "open":
                cmd_open(controller)
            elif choice == "delete":
                cmd_delete(controller)
            elif choice == "reset":
                cmd_reset(controller)
            elif choice == "settings":
                cmd_settings(db_path)
            elif choice == "logout":
                controller.logout()
                console.print("[dim]Logged out.[/dim]")
            elif choice in ("quit", "exit", "q"):
                controller.request_shutdown()
                console.print("[dim]Good luck on your exam![/dim]")
            elif choice == "forget":
                path = Prompt.ask("Folder path to forget")
                remove_folder_path(db_path, path)
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except SessionExitRequested:
            console.print("[dim]Back to menu.[/dim]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except (QbankError, ValueError) as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
