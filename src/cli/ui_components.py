"""CLI UI components (Rich).

Keeps table/panel layout out of the command functions.
"""

from __future__ import annotations

import logging

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from core.domain.models import EntitlementSearchResult, FileMatch

NO_ENTITLEMENTS_MARKER = "- no entitlements"


def configure_logging(console: Console, *, verbose: bool = False) -> None:
    """Route every logger through Rich on the given (stderr) console."""

    handler = RichHandler(
        console=console,
        show_path=False,
        show_time=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def print_file_matches(console: Console, matches: list[FileMatch]) -> None:
    """Path, then the raw entitlement XML (or the no-entitlements marker)."""

    for match in matches:
        console.print(Text(match.path, style="bold cyan"))
        if match.has_entitlements:
            console.print()
            console.print(match.entitlements, markup=False, highlight=False, soft_wrap=True)
        else:
            console.print(Text(f"\n\t{NO_ENTITLEMENTS_MARKER}\n", style="dim"))


def build_entitlements_table(result: EntitlementSearchResult) -> Table:
    """Aligned two-column table: entitlement key, then file path."""

    table = Table(box=box.SIMPLE_HEAD, show_edge=False, pad_edge=False)
    table.add_column("Entitlement", style="green", no_wrap=True)
    table.add_column("Path", style="white", overflow="fold")
    for match in result.matches:
        table.add_row(Text(match.key), Text(match.path))
    return table


def print_warnings(console: Console, warnings: list[str]) -> None:
    for warning in warnings:
        console.print(Text(f"warning: {warning}", style="yellow"))
