#!/usr/bin/env python3
"""
Command line importer.

Runs a file through the whole pipeline with the auto-detected mapping:
parse, map, validate, dedupe and import, printing summaries as it goes.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from payroll_import.core.config import settings
from payroll_import.core.exceptions import ImportPipelineError, MappingError
from payroll_import.core.logging_config import configure_logging
from payroll_import.domain.imports.importer import InMemoryRecordStore, RecordStore
from payroll_import.domain.imports.pipeline import (
    ImportSession,
    confirm_mapping,
    create_session,
    parse_upload,
    run_import,
    validate_records,
)
from payroll_import.domain.imports.profiles import PROFILES
from payroll_import.domain.imports.reports import import_outcome_csv, validation_issues_csv

MAX_ISSUES_SHOWN = 20


class ImportConsole:
    """Renders pipeline progress for one file."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_mapping(self, session: ImportSession) -> None:
        table = Table(title=f"Column Mapping ({session.profile.name})")
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Required", justify="center")
        table.add_column("Source Column", style="white")

        for schema_field in session.profile.fields:
            header = session.mapper.header_for(schema_field.name)
            table.add_row(
                schema_field.label,
                "✓" if schema_field.required else "",
                header or "[dim]not mapped[/dim]",
            )
        self.console.print(table)

    def print_summary(self, session: ImportSession) -> None:
        summary = session.summary
        table = Table(title="Validation Summary")
        table.add_column("Rows", style="cyan")
        table.add_column("Count", justify="right")
        table.add_row("Total", str(summary.total_rows))
        table.add_row("[green]Valid[/green]", str(summary.valid_rows))
        table.add_row("[red]Errors[/red]", str(summary.error_rows))
        table.add_row("[yellow]Warnings[/yellow]", str(summary.warning_rows))
        table.add_row("Duplicates", str(summary.duplicate_rows))
        table.add_row("[bold]Importable[/bold]", str(summary.importable_rows))
        self.console.print(table)

        issues = session.report.issues
        if not issues:
            return
        issue_table = Table(title=f"Issues (first {min(len(issues), MAX_ISSUES_SHOWN)} of {len(issues)})")
        issue_table.add_column("Row", justify="right", style="dim")
        issue_table.add_column("Field", style="cyan")
        issue_table.add_column("Severity")
        issue_table.add_column("Message", style="white")
        for issue in issues[:MAX_ISSUES_SHOWN]:
            color = "red" if issue.severity.value == "error" else "yellow"
            issue_table.add_row(str(issue.row), issue.field, f"[{color}]{issue.severity.value}[/{color}]", issue.message)
        self.console.print(issue_table)

    def print_outcome(self, session: ImportSession) -> None:
        outcome = session.outcome
        lines = [
            f"[green]Imported:[/green] {outcome.imported}",
            f"[yellow]Skipped:[/yellow] {outcome.skipped}",
            f"[red]Errored:[/red] {outcome.errored}",
        ]
        if outcome.cancelled:
            lines.append("[red]Import was cancelled[/red]")
        border = "green" if outcome.errored == 0 else "yellow"
        self.console.print(Panel("\n".join(lines), title="Import Result", border_style=border))

    async def run(
        self,
        profile_name: str,
        file_path: Path,
        store: RecordStore,
        duplicate_handling: str = "skip",
        include_duplicates: bool = False,
    ) -> ImportSession:
        session = create_session(profile_name)
        parse_upload(session, file_path.read_bytes(), file_path.name)
        self.console.print(
            f"[green]Parsed[/green] {session.parsed.total_rows} rows from {file_path.name}"
            + (f" [yellow]({session.parsed.dropped_rows} malformed rows dropped)[/yellow]" if session.parsed.dropped_rows else "")
        )

        self.print_mapping(session)
        confirm_mapping(session)

        validate_records(session, include_duplicates=include_duplicates)
        self.print_summary(session)
        if not session.summary.can_import:
            self.console.print("[red]No importable rows.[/red]")
            return session

        with Progress(
            TextColumn("[bold blue]Importing"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
        ) as progress:
            task = progress.add_task("import", total=100)
            await run_import(
                session,
                store,
                duplicate_handling=duplicate_handling,
                progress_callback=lambda percent: progress.update(task, completed=percent),
            )

        self.print_outcome(session)
        return session


def _build_store(dry_run: bool) -> RecordStore:
    if dry_run:
        return InMemoryRecordStore()

    from payroll_import.db.models import SqlRecordStore, create_tables
    from payroll_import.db.session import get_engine

    engine = get_engine()
    create_tables(engine)
    return SqlRecordStore(engine)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Payroll Import - load CSV/Excel files into payroll tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s employees adp_export.xlsx --dry-run
  %(prog)s punches clock.csv --duplicate-handling update --report punches_report.csv
        """
    )
    parser.add_argument('profile', choices=sorted(PROFILES), help='Import profile')
    parser.add_argument('file', type=Path, help='CSV or Excel file to import')
    parser.add_argument('--dry-run', action='store_true', help='Validate and import into memory only')
    parser.add_argument(
        '--duplicate-handling',
        choices=['skip', 'update'],
        default='skip',
        help='What to do when a record already exists (default: skip)'
    )
    parser.add_argument('--include-duplicates', action='store_true', help='Import rows flagged as in-file duplicates')
    parser.add_argument('--report', type=Path, help='Write the per-row import report to this CSV file')
    parser.add_argument('--errors', type=Path, help='Write validation issues to this CSV file')

    args = parser.parse_args(argv)
    configure_logging(settings.log_level)
    console = Console()

    if not args.file.exists():
        console.print(f"[red]❌ File not found: {args.file}[/red]")
        return 1

    importer = ImportConsole(console)
    try:
        session = asyncio.run(
            importer.run(
                args.profile,
                args.file,
                _build_store(args.dry_run),
                duplicate_handling=args.duplicate_handling,
                include_duplicates=args.include_duplicates,
            )
        )
    except MappingError as e:
        console.print(Panel(f"[red]{e.message}[/red]", title="Mapping Error", border_style="red"))
        return 2
    except ImportPipelineError as e:
        console.print(Panel(f"[red]{e}[/red]", title="Import Error", border_style="red"))
        return 1

    if args.errors and session.report is not None:
        args.errors.write_text(validation_issues_csv(session.report.issues), encoding="utf-8")
        console.print(f"Validation issues written to {args.errors}")
    if args.report and session.outcome is not None:
        args.report.write_text(import_outcome_csv(session.outcome, session.profile.business_key), encoding="utf-8")
        console.print(f"Import report written to {args.report}")

    if session.outcome is None:
        return 1
    return 0 if session.outcome.errored == 0 else 3


if __name__ == "__main__":
    sys.exit(main())
