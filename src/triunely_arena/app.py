"""Interactive CLI application."""
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.prompt import Prompt
from rich.table import Table

from triunely_arena.arena import (
    ArenaError, ArenaSession, BoardLoadError, EvidenceGateLocked, GradingFailed,
    SaveFailed, Step, TransitionEvent,
)
from triunely_arena.attempts import (
    get_current_user_id, get_setting, set_setting, sign_in, sign_out, start_boss_attempt,
)
from triunely_arena.board import load_board
from triunely_arena.config import settings
from triunely_arena.dashboard import get_progress_summary
from triunely_arena.db import DEFAULT_DB_PATH, init_db
from triunely_arena.exhibits import clamp_text
from triunely_arena.grader import GraderClient
from triunely_arena.importer import import_pack
from triunely_arena.seed import is_seeded, seed_all

console = Console()
logger = logging.getLogger(__name__)

TUTORIAL_KEY = "arena_tutorial_seen"
EXIT_WORDS = ("q", "quit", "menu")


class SessionExitRequested(Exception):
    """Raised when the user leaves a drill mid-way."""


def session_prompt(text: str, **kwargs) -> str:
    answer = Prompt.ask(text, **kwargs)
    if str(answer).strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def show_welcome():
    console.print(Panel(
        "[bold]Apologetics Arena[/bold]\n[dim]Hear the claim. Weigh the evidence. Answer with grace.[/dim]",
        title="Triunely", border_style="yellow",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("arena", "Run today's drills"),
        ("board", "Today's drills and boss battle"),
        ("boss", "Enter the weekly boss battle"),
        ("progress", "XP, Light Points and scores"),
        ("day", "Jump to a day number (blank for today)"),
        ("login", "Sign in"),
        ("logout", "Sign out"),
        ("import", "Import a content pack (JSON/YAML)"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_tutorial(db_path: str) -> None:
    if get_setting(db_path, TUTORIAL_KEY):
        return
    console.print(Panel(
        "1. [bold]Charge[/bold]: read the objection.\n"
        "2. [bold]Evidence[/bold]: open at least one opponent exhibit and spot the fault line.\n"
        "3. [bold]Cross-exam[/bold]: pick your strongest defense exhibit, add notes if you like.\n"
        "4. [bold]Verdict[/bold]: the Faith Coach scores you. Rewards are paid on the first completion.",
        title="How the Arena works", border_style="cyan",
    ))
    set_setting(db_path, TUTORIAL_KEY, "1")


def render_step_header(session: ArenaSession) -> None:
    board = session.board
    step = session.step
    done = board.completed_count() if board else 0
    total = len(board.drills) if board else 0
    console.print(f"\n[bold yellow]Drill {done}/{total} • Step {int(step)}/4 — {step.title}[/bold yellow]")
    console.print(f"[dim]{step.subtitle}[/dim]")
    progress = Progress(TextColumn("[yellow]Progress"), BarColumn(), console=console, transient=False)
    with progress:
        progress.add_task("step", total=4, completed=int(step))


def on_transition(event: TransitionEvent) -> None:
    if event.kind == "locked":
        console.print(
            "[yellow]Quick study moment:[/yellow] open at least one opponent exhibit before continuing."
        )


def show_exhibit(exhibit) -> None:
    body = exhibit.proof or exhibit.summary
    if exhibit.how_to_use:
        body += f"\n\n[cyan]How to use:[/cyan] {exhibit.how_to_use}"
    if exhibit.muslim_angle:
        body += f"\n[cyan]Angle:[/cyan] {exhibit.muslim_angle}"
    if exhibit.refs:
        body += f"\n[dim]{' • '.join(exhibit.refs)}[/dim]"
    console.print(Panel(body, title=exhibit.title, subtitle=exhibit.lane, border_style="magenta"))


def list_exhibits(exhibits, opened: set, selected: str | None) -> None:
    for i, ex in enumerate(exhibits, 1):
        marks = ("[green]read[/green] " if ex.key in opened else "") + ("[yellow]★[/yellow]" if ex.key == selected else "")
        console.print(f"  [cyan]{i})[/cyan] {ex.title} {marks}")
        if ex.summary:
            console.print(f"     [dim]{clamp_text(ex.summary, 100)}[/dim]")


def _pick(choice: str, items: list):
    if choice.isdigit() and 1 <= int(choice) <= len(items):
        return items[int(choice) - 1]
    return None


def run_charge(session: ArenaSession) -> None:
    drill = session.drill
    console.print(Panel(drill.prompt, title=drill.title, border_style="red"))
    if drill.why_it_matters:
        console.print(f"[dim]Why it matters: {drill.why_it_matters}[/dim]")
    session_prompt("[dim]Press Enter to review the evidence[/dim]", default="")
    session.next_step()


def run_evidence(session: ArenaSession) -> None:
    console.print("\n[bold]Opponent exhibits[/bold]")
    list_exhibits(session.prosecution_exhibits, session.state.opened, session.state.selected_prosecution)
    if session.state.fault_line:
        console.print(f"  Fault line: [yellow]{session.state.fault_line}[/yellow]")
    choice = session_prompt("Open an exhibit (number), f = fault line, n = next, b = back", default="n").strip().lower()
    exhibit = _pick(choice, session.prosecution_exhibits)
    if exhibit:
        session.open_exhibit(exhibit)
        show_exhibit(exhibit)
    elif choice == "f":
        for i, line in enumerate(session.fault_lines, 1):
            console.print(f"  [cyan]{i})[/cyan] {line}")
        picked = _pick(session_prompt("Which hidden assumption is weakest?", default="").strip(), session.fault_lines)
        session.select_fault_line(picked)
    elif choice == "b":
        session.prev_step()
    elif choice == "n":
        try:
            session.next_step()
        except EvidenceGateLocked:
            pass


def run_cross_exam(session: ArenaSession) -> None:
    console.print("\n[bold]Defense exhibits[/bold]")
    list_exhibits(session.defense_exhibits, session.state.opened, session.state.selected_defense)
    if session.pending_save is not None:
        console.print("[yellow]Your last score hasn't been saved yet. Enter r to retry the save.[/yellow]")
    choice = session_prompt(
        "Open an exhibit (number), w = notes, s = submit, r = retry save, b = back", default="s",
    ).strip().lower()
    exhibit = _pick(choice, session.defense_exhibits)
    if exhibit:
        session.open_exhibit(exhibit)
        show_exhibit(exhibit)
        return
    if choice == "w":
        session.set_notes(session_prompt("Notes", default=session.state.notes))
        return
    if choice == "b":
        session.prev_step()
        return
    if choice not in ("s", "r"):
        return
    try:
        with console.status("Scoring..."):
            if choice == "r":
                session.retry_save()
            else:
                session.submit()
    except GradingFailed as e:
        console.print(f"[red]Faith Coach (Apologetics) failed[/red]\nError: {e.error}\nStatus: {e.status}")
    except SaveFailed as e:
        console.print(f"[red]Couldn't save:[/red] {e.error}")
    except ArenaError as e:
        console.print(f"[yellow]{e}[/yellow]")


def run_verdict(session: ArenaSession) -> bool:
    """Show the verdict. Returns False when the user is done."""
    verdict = session.verdict
    reward = verdict.reward
    lines = [f"Score: [bold]{verdict.score:g}[/bold]/100"]
    if verdict.grade.summary:
        lines.append(verdict.grade.summary)
    if reward.already_completed:
        lines.append("[dim]Already completed: no new rewards this time.[/dim]")
    else:
        lines.append(f"[green]+{reward.xp} XP • +{reward.light_points} Light Points[/green]")
    console.print(Panel("\n".join(lines), title="Verdict", border_style="green"))
    if session.reload_error:
        console.print(f"[yellow]Saved, but couldn't refresh today's drills: {session.reload_error}[/yellow]")
    choice = session_prompt("n = next drill, d = done", default="n").strip().lower()
    if choice == "d":
        return False
    session.start_next_drill()
    return session.drill is not None


def run_arena_session(session: ArenaSession) -> None:
    while session.drill is not None:
        render_step_header(session)
        step = session.step
        if step == Step.CHARGE:
            run_charge(session)
        elif step == Step.EVIDENCE:
            run_evidence(session)
        elif step == Step.CROSS_EXAM:
            run_cross_exam(session)
        elif not run_verdict(session):
            return


def cmd_arena(db_path: str, day_override=None):
    if not get_current_user_id(db_path):
        console.print("[yellow]Not logged in. Use 'login' first so your progress is saved.[/yellow]")
        return
    show_tutorial(db_path)
    session = ArenaSession(db_path, GraderClient(), day_override, settings.drills_limit)
    session.subscribe(on_transition)
    try:
        board = session.load()
    except BoardLoadError as e:
        console.print(f"[red]Couldn't load Apologetics: {e}[/red]")
        return
    if board.note:
        console.print(f"[yellow]{board.note}[/yellow]")
    if session.drill is None:
        return
    try:
        run_arena_session(session)
    except SessionExitRequested:
        console.print("[dim]Leaving the arena.[/dim]")


def cmd_board(db_path: str, day_override=None):
    board = load_board(db_path, day_override, settings.drills_limit)
    if not board.ok:
        console.print(f"[red]Couldn't load Apologetics: {board.error}[/red]")
        return
    if board.note and board.pack is None:
        console.print(f"[yellow]{board.note}[/yellow]")
        return
    day = board.day
    table = Table(title=f"{board.pack.name}: Day {day.day_number} (Week {day.week_number}, Day {day.day_of_week})")
    table.add_column("#", justify="right")
    table.add_column("Drill")
    table.add_column("Rewards", justify="right")
    table.add_column("Status")
    for i, d in enumerate(board.drills, 1):
        attempt = board.attempt_for(d.id)
        status = f"[green]Done ({attempt.score:g})[/green]" if attempt and attempt.completed else ""
        table.add_row(str(i), d.title, f"{d.xp_reward} XP / {d.light_points_bonus} LP", status)
    console.print(table)
    if board.note:
        console.print(f"[yellow]{board.note}[/yellow]")
    if board.boss:
        console.print(f"\n[bold]Weekly Boss Battle:[/bold] {board.boss.title}")


def cmd_boss(db_path: str, day_override=None):
    board = load_board(db_path, day_override, settings.drills_limit)
    if not board.ok:
        console.print(f"[red]Couldn't load Apologetics: {board.error}[/red]")
        return
    boss = board.boss
    if boss is None:
        console.print("[yellow]No boss battle is seeded for this week.[/yellow]")
        return
    body = boss.description or ""
    body += f"\n\nRewards: +{boss.xp_reward_total} XP • +{boss.light_points_bonus_total} Light Points"
    for i, r in enumerate(boss.rounds, 1):
        title = r.get("title", f"Round {i}") if isinstance(r, dict) else str(r)
        body += f"\n  {i}. {title}"
    console.print(Panel(body.strip(), title=f"Weekly Boss Battle: {boss.title}", border_style="red"))
    if Prompt.ask("Enter the arena?", choices=["y", "n"], default="y") != "y":
        return
    res = start_boss_attempt(db_path, boss.id)
    if not res.ok:
        console.print(f"[red]Couldn't enter: {res.error}[/red]")
        return
    console.print("[green]Entered the Arena.[/green] [dim]Round-by-round play is not available yet.[/dim]")


def cmd_progress(db_path: str, day_override=None):
    board = load_board(db_path, day_override, settings.drills_limit)
    if not board.ok:
        console.print(f"[red]Couldn't load Apologetics: {board.error}[/red]")
        return
    s = get_progress_summary(db_path, board)
    console.print(Panel(
        f"Today: [bold]{s['completed_today']}/{s['total_today']}[/bold] drills"
        + (f"  |  Next: {s['next_drill']}" if s["next_drill"] else "")
        + f"\nBoss: {s['boss_status']}"
        + f"\nLifetime: [bold]{s['xp_earned']}[/bold] XP  |  [bold]{s['light_points_earned']}[/bold] LP"
        + f"  |  Drills: {s['drills_completed']}  |  Avg score: {s['avg_score']}",
        title="Progress", border_style="blue",
    ))


def cmd_login(db_path: str):
    user_id = Prompt.ask("User id").strip()
    if not user_id:
        console.print("[red]User id is required.[/red]")
        return
    sign_in(db_path, user_id)
    console.print(f"[green]Signed in as {user_id}.[/green]")


def cmd_import(db_path: str):
    file_path = Prompt.ask("Pack file path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    result = import_pack(db_path, file_path)
    console.print(
        f"[green]Imported '{result['name']}': {result['drills']} drills, "
        f"{result['boss_battles']} boss battles (now active)[/green]"
    )


def ask_day_override():
    raw = Prompt.ask("Day number (blank for today)", default="").strip()
    return int(raw) if raw.isdigit() else None


def main():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()
    day_override = None

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="arena").strip().lower()
        try:
            if choice == "arena":
                cmd_arena(db_path, day_override)
            elif choice == "board":
                cmd_board(db_path, day_override)
            elif choice == "boss":
                cmd_boss(db_path, day_override)
            elif choice == "progress":
                cmd_progress(db_path, day_override)
            elif choice == "day":
                day_override = ask_day_override()
            elif choice == "login":
                cmd_login(db_path)
            elif choice == "logout":
                sign_out(db_path)
                console.print("[dim]Signed out.[/dim]")
            elif choice == "import":
                cmd_import(db_path)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Grace and peace.[/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.exception("Command failed")
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
