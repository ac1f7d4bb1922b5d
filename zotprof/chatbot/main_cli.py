from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Prompt
from rich.table import Table
import argparse
import asyncio
import logging

from zotprof.settings import DEFAULT_TERM, LOG_LEVEL
from zotprof.chatbot.actions import CoursePlanner, SearchResult, open_sources, search_course, search_professor
from zotprof.chatbot.conversation import ConversationEngine, Stage, start_conversation
from zotprof.chatbot.nlu_rules import extract_term
from zotprof.services.models import Term

console = Console()
log = logging.getLogger("zotprof.cli")


def _print_results(result: SearchResult):
    if result.message:
        console.print(f"[yellow]{result.message}[/yellow]")
    if not result.records:
        return

    title = f"{result.course_code} — {result.course_title}" if result.course_code else result.query
    console.print(f"[bold]{title}[/bold] [dim]({result.term})[/dim]")

    tbl = Table(show_header=True, header_style="bold")
    for col in ["Professor", "Section", "Time", "Seats", "Rating", "Difficulty", "A%", "B%", "Tags"]:
        tbl.add_column(col)

    for r in result.records:
        sec = r.section
        seats = sec.seats_text if sec else ""
        if sec and sec.almost_full:
            seats = f"[red]{seats}[/red]"
        tbl.add_row(
            r.name,
            f"{sec.code} {sec.type}" if sec else "",
            sec.time if sec else "",
            seats,
            f"{r.rating:.1f}" if r.rating else "—",
            f"{r.difficulty:.1f}" if r.difficulty else "—",
            str(r.grades["A"]) if r.has_grade_data else "—",
            str(r.grades["B"]) if r.has_grade_data else "—",
            ", ".join(r.tags[:3]),
        )
    console.print(tbl)

    for r in result.records:
        if r.narrative:
            console.print(f"[dim]{r.name}:[/dim] {r.narrative}")
        if r.courses:
            console.print(f"[dim]Teaches:[/dim] {', '.join(r.courses)}")


async def _search(query: str, term: Term, search_type: str):
    async with open_sources() as sources:
        if search_type == "professor":
            result = await search_professor(sources, query, term)
        else:
            result = await search_course(sources, query, term)
    _print_results(result)


async def _chat():
    turn = start_conversation()
    state = turn.state
    for msg in turn.messages:
        console.print(f"[bold cyan]ZotProf:[/bold cyan] {msg}\n")

    async with open_sources() as sources:
        engine = ConversationEngine(CoursePlanner(sources), sources.narrative)
        while True:
            user = Prompt.ask("You")
            if user.strip().lower() in {"exit", "quit"}:
                break
            if user.strip().lower() == "help":
                console.print(
                    "Answer the questions to build a plan:\n"
                    "  • a quarter, e.g. Winter 2026 or w26\n"
                    "  • your courses, e.g. ICS 33, MATH 3A\n"
                    "  • your goals, e.g. high GPA\n"
                    "Say 'start over' at the end to plan another quarter."
                )
                continue
            if not user.strip():
                continue

            if state.stage == Stage.COLLECT_GOALS:
                console.print("[dim]🔍 ZotProf is analyzing...[/dim]")
            turn = await engine.handle(state, user)
            state = turn.state
            for msg in turn.messages:
                console.print(f"[bold cyan]ZotProf:[/bold cyan] {msg}\n")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="zotprof", description="ZotProf course planner")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("chat", help="plan a quarter with the assistant")

    p_search = sub.add_parser("search", help="look up a class or professor")
    p_search.add_argument("query")
    p_search.add_argument("--type", choices=["class", "professor"], default="class")
    p_search.add_argument("--term", default=DEFAULT_TERM, help='e.g. "Winter 2026"')

    parser.add_argument("--log-level", default=LOG_LEVEL)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    if args.command == "search":
        term = extract_term(args.term) or Term.from_label(DEFAULT_TERM)
        asyncio.run(_search(args.query, term, args.type))
        return

    console.print("[bold]ZotProf AI Advisor[/bold]")
    console.print("Type 'help' for tips. Type 'exit' to quit.\n")
    asyncio.run(_chat())


if __name__ == "__main__":
    main()
