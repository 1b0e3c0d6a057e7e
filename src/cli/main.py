"""ipsw-ent command line.

Commands:
- `ent`: search an IPSW's binaries by entitlement key or by file path;
- `doctor`: environment diagnostics and mount configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.text import Text

from adapters.dmg_mounter import build_mounter
from adapters.ipsw_archive import BuildManifestResolver, ZipImageExtractor
from adapters.macho_reader import LiefEntitlementReader
from adapters.plist_decoder import decode_entitlements
from cli import doctor
from cli.ui_components import (
    build_entitlements_table,
    configure_logging,
    print_file_matches,
    print_warnings,
)
from core.config import AppSettings
from core.domain.errors import ArgumentError, EntitlementDBError
from core.services.cache_store import CacheStore
from core.services.entitlement_scanner import EntitlementScanner, ScanSession
from core.services.query_engine import QueryMode, search_entitlements, search_files, validate_query

app = typer.Typer(
    no_args_is_help=True,
    help="Search the Mach-O binaries of an IPSW by entitlement.",
)
app.add_typer(doctor.app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)


def _print_error(exc: Exception) -> None:
    _err_console.print(Text.assemble(("error: ", "red"), str(exc)))


def build_cache_store(settings: AppSettings) -> CacheStore:
    """Wire the concrete adapters for one invocation (fresh scan session)."""

    scanner = EntitlementScanner(
        extractor=ZipImageExtractor(settings.temp_dir),
        mounter=build_mounter(settings),
        reader=LiefEntitlementReader(),
        session=ScanSession(),
    )
    return CacheStore(
        scanner=scanner,
        resolver_factory=BuildManifestResolver.from_archive,
        extension=settings.db_extension,
    )


@app.command(name="ent")
def ent(
    ipsw: Path = typer.Argument(..., help="Path to the IPSW."),
    entitlement: Optional[str] = typer.Option(
        None, "--ent", "-e", help="Entitlement to search for."
    ),
    db: Optional[Path] = typer.Option(
        None, "--db", help="Path to entitlement database to use."
    ),
    search_file: Optional[str] = typer.Option(
        None, "--file", "-f", help="Output entitlements for file."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Debug logging."),
) -> None:
    """Search IPSW filesystem DMGs for Mach-Os with a given entitlement."""

    configure_logging(_err_console, verbose=verbose)

    try:
        request = validate_query(entitlement, search_file)
    except ArgumentError as exc:
        _print_error(exc)
        raise typer.Exit(code=2) from exc

    settings = AppSettings()
    try:
        database = build_cache_store(settings).load_or_build(ipsw, db)

        if request.mode is QueryMode.FILE:
            print_file_matches(_console, search_files(database, request.term))
            return

        result = search_entitlements(database, request.term, decode_entitlements)
    except EntitlementDBError as exc:
        _print_error(exc)
        raise typer.Exit(code=1) from exc

    _err_console.print(Text.assemble("Files containing entitlement: ", (result.term, "bold")))
    print_warnings(_err_console, result.warnings)
    _console.print(build_entitlements_table(result))


def run() -> None:
    app()


if __name__ == "__main__":
    run()
