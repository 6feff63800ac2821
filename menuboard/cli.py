# menuboard/cli.py
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich import box

from .config import STRATEGIES, Settings, load_settings, require_settings
from .errors import MenuboardError
from .logging_config import setup_logging
from .orchestrator import ExtractionOrchestrator, RetryPolicy
from .pipeline import PipelineRunner
from .proximity import MatchPolicy
from .snapshot import SeleniumRenderer
from .storage import GitHubStorage, LocalStorage, available_dates, load_record, menu_key
from .strategies import build_strategies
from .util import default_query_date, from_date_code, is_date_code, WEEKDAYS_KO


app = typer.Typer(add_completion=False, help="Cafeteria menu board photo → dated menu records")
console = Console()

logger = logging.getLogger("menuboard.cli")


@app.callback()
def main_options(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    if verbose:
        setup_logging(logging.DEBUG)


def make_storage(s: Settings):
    if s.storage_backend == "local":
        return LocalStorage(s.storage_dir)
    return GitHubStorage(s.github_token, s.github_owner, s.github_repo, s.github_branch, timeout=s.request_timeout)


def _settings(for_run: bool = False) -> Settings:
    try:
        s = load_settings()
        require_settings(s, for_run=for_run)
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    return s


def _print_record(record: dict) -> None:
    console.print(f"[cyan]{record.get('date') or record.get('menuDate')}[/cyan]")
    sections = record.get("sections") or []
    if sections:
        for sec in sections:
            console.print(f"[bold]\\[{sec['label']}][/bold]")
            for item in sec["items"]:
                console.print(f"  • {item}")
    else:
        for item in record["menuItems"]:
            console.print(f"  • {item}")
    console.print(f"[dim]{record.get('count', len(record['menuItems']))} item(s)"
                  f"{' · updated ' + record['timestamp'] if record.get('timestamp') else ''}[/dim]")


@app.command("run")
def run(
    url: str = typer.Option(None, help="Override channel URL"),
    strategy: str = typer.Option(None, help="auto | vision | ocr | hybrid"),
):
    console.print("[cyan]Loading settings...[/cyan]")
    logger.info("Loading settings")
    s = _settings(for_run=True)
    if strategy:
        if strategy.lower() not in STRATEGIES:
            console.print(f"[red]--strategy must be one of {', '.join(STRATEGIES)}[/red]")
            raise typer.Exit(code=1)
        s = replace(s, extraction_strategy=strategy.lower())
        try:
            require_settings(s, for_run=True)
        except RuntimeError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)

    storage = make_storage(s)
    console.print("[cyan]Checking storage...[/cyan]")
    if not storage.ping():
        console.print("[red]Storage backend unreachable; check token and repository[/red]")
        raise typer.Exit(code=1)

    console.print(f"[cyan]Selecting extraction strategy ({s.extraction_strategy})...[/cyan]")
    chain = build_strategies(s)
    logger.info("Strategy chain: %s", [c.name for c in chain])

    target = url or s.channel_url
    console.print(f"[cyan]Rendering {target}...[/cyan]")
    renderer = SeleniumRenderer(settle_seconds=s.settle_seconds, page_timeout=s.page_timeout, chrome_path=s.chrome_path)

    runner = PipelineRunner(
        ExtractionOrchestrator(RetryPolicy(s.max_attempts, s.backoff_base, s.backoff_cap)),
        storage=storage,
        storage_prefix=s.storage_prefix,
        policy=MatchPolicy(image_signature=s.image_signature, caption_max_len=s.caption_max_len, tie_break=s.tie_break),
        post_delay=s.post_delay,
    )
    try:
        snapshot = renderer.snapshot(target)
        result = runner.run_all(snapshot, chain)
    except MenuboardError as e:
        console.print(f"[red]Run aborted ({e.kind.value}): {e}[/red]")
        logger.error("Run aborted: %s", e)
        raise typer.Exit(code=1)

    table = Table(title="Processed Posts", box=box.SIMPLE_HEAVY)
    table.add_column("Date")
    table.add_column("Caption")
    table.add_column("Strategy")
    table.add_column("Items")
    table.add_column("Status")
    for e in result.entries:
        status = "[green]ok[/green]" if e.success else f"[red]{e.error}[/red]"
        if e.needs_review:
            status = "[yellow]review[/yellow]"
        table.add_row(e.date_code or "-", e.caption_text, e.strategy_used or "-", str(len(e.items)), status)
    console.print(table)
    console.print(f"[green]Done: {result.succeeded} ok, {result.failed} failed, "
                  f"{result.total_items} item(s) in {result.duration:.1f}s.[/green]")
    if result.failed:
        raise typer.Exit(code=1)


def _lookup(date: Optional[str]) -> dict:
    """Record for DATE, or for the default query date with a fallback to the latest stored one."""
    if date is not None and not is_date_code(date):
        console.print("[red]Date must be YYMMDD (e.g. 250827)[/red]")
        raise typer.Exit(code=1)
    s = _settings()
    storage = make_storage(s)
    target = date or default_query_date()
    try:
        record = load_record(storage, s.storage_prefix, target)
        if record is None and date is None:
            codes = available_dates(storage, s.storage_prefix)
            if codes:
                console.print(f"[yellow]No menu for {target}; showing latest ({codes[0]})[/yellow]")
                record = load_record(storage, s.storage_prefix, codes[0])
    except (MenuboardError, ValueError) as e:
        console.print(f"[red]Lookup failed: {e}[/red]")
        raise typer.Exit(code=1)
    if record is None:
        console.print(f"[yellow]No menu stored for {target} ({menu_key(s.storage_prefix, target)})[/yellow]")
        raise typer.Exit(code=1)
    return record


def menu_text(record: dict, full: bool = False) -> str:
    """Plain-text menu for pasting into chat: items only, or a headed list with count and update time."""
    day = record.get("date") or "오늘의 메뉴"
    items = record.get("menuItems") or []
    if not full:
        return f"📅 {day}\n\n" + "\n".join(items)

    lines = ["🍽️ 구내식당 메뉴", "=" * 40, f"📅 {day}", "", "📋 메뉴:"]
    sections = record.get("sections") or []
    if sections:
        for sec in sections:
            lines.append(f"[{sec['label']}]")
            lines.extend(f"• {item}" for item in sec["items"])
    else:
        lines.extend(f"• {item}" for item in items)
    lines += ["", f"총 {record.get('count', len(items))}개 메뉴"]
    if record.get("timestamp"):
        lines.append(f"업데이트: {record['timestamp']}")
    return "\n".join(lines)


@app.command("show")
def show(
    date: Optional[str] = typer.Argument(None, help="YYMMDD; default today (tomorrow after 15:00)"),
    raw: bool = typer.Option(False, "--raw", help="Print the stored JSON"),
):
    record = _lookup(date)
    if raw:
        console.print_json(json.dumps(record, ensure_ascii=False))
    else:
        _print_record(record)


@app.command("copy")
def copy(
    date: Optional[str] = typer.Argument(None, help="YYMMDD; default today (tomorrow after 15:00)"),
    full: bool = typer.Option(False, "--full", help="Headed list with item count and update time"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the text to this file"),
):
    """Menu as paste-ready text (stdout, or a file with --output)."""
    text = menu_text(_lookup(date), full=full)
    if output is None:
        console.print(text, markup=False, highlight=False, soft_wrap=True)
        return
    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]Wrote {output}[/green]")


@app.command("dates")
def dates(limit: int = typer.Option(10, help="How many dates to show")):
    s = _settings()
    try:
        codes = available_dates(make_storage(s), s.storage_prefix)
    except MenuboardError as e:
        console.print(f"[red]Listing failed: {e}[/red]")
        raise typer.Exit(code=1)
    if not codes:
        console.print("[yellow]No menu records stored yet.[/yellow]")
        return
    table = Table(title="Stored Menus", box=box.SIMPLE_HEAVY)
    table.add_column("#")
    table.add_column("Date code")
    table.add_column("Date")
    for i, code in enumerate(codes[:limit], start=1):
        try:
            d = from_date_code(code)
            pretty = f"{d.isoformat()} ({WEEKDAYS_KO[d.weekday()][0]})"
        except ValueError:
            pretty = "?"
        table.add_row(str(i), code, pretty)
    console.print(table)
    if len(codes) > limit:
        console.print(f"[dim]... and {len(codes) - limit} more (use --limit {len(codes)})[/dim]")


@app.command("status")
def status():
    s = _settings()
    storage = make_storage(s)
    if not storage.ping():
        console.print("[red]Storage unreachable[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Storage reachable ({s.storage_backend})[/green]")
    try:
        codes = available_dates(storage, s.storage_prefix)
        latest = load_record(storage, s.storage_prefix, codes[0]) if codes else None
    except (MenuboardError, ValueError):
        logger.exception("Could not read latest record")
        latest = None
    if latest:
        console.print(f"[green]Latest: {latest.get('menuDate')} with {len(latest['menuItems'])} item(s), "
                      f"updated {latest.get('timestamp', '?')}[/green]")
    else:
        console.print("[yellow]No readable menu record yet[/yellow]")


def main():
    app()

if __name__ == "__main__":
    main()
