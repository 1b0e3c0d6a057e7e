"""Doctor command for environment diagnostics."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

import lief
import typer
from rich.console import Console
from rich.table import Table

from core.config import AppSettings, MountBackend, write_user_env_vars

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and mount configuration.")

_console = Console()


def _check_tool(executable: str) -> tuple[bool, str]:
    found = shutil.which(executable)
    if found:
        return True, found
    return False, f"{executable} not found on PATH"


def _check_writable(directory: Path | None) -> tuple[bool, str]:
    target = directory or Path(tempfile.gettempdir())
    if not target.exists():
        return False, f"{target} does not exist"
    if not os.access(target, os.W_OK):
        return False, f"{target} is not writable"
    return True, str(target)


def _lief_version() -> str:
    return str(getattr(lief, "__version__", "unknown"))


def mount_tools(settings: AppSettings) -> list[str]:
    """Executables the configured backend needs."""

    backend = settings.mount_backend.resolve()
    if backend is MountBackend.HDIUTIL:
        return [settings.hdiutil_path]
    return [settings.apfs_fuse_path, settings.fusermount_path]


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="ipsw-ent Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    backend = settings.mount_backend.resolve()
    table.add_row("Mount backend", "OK", f"{backend.value} (configured: {settings.mount_backend.value})")
    table.add_row("DB extension", "OK", settings.db_extension)

    # Tools
    missing_tool = False
    for executable in mount_tools(settings):
        ok, detail = _check_tool(executable)
        missing_tool = missing_tool or not ok
        table.add_row(executable, "OK" if ok else "FAIL", detail)

    table.add_row("LIEF", "OK", _lief_version())

    # Directories
    ok_tmp, detail_tmp = _check_writable(settings.temp_dir)
    table.add_row("Extraction dir", "OK" if ok_tmp else "FAIL", detail_tmp)
    ok_mnt, detail_mnt = _check_writable(settings.mount_root)
    table.add_row("Mount root", "OK" if ok_mnt else "FAIL", detail_mnt)

    _console.print(table)

    if missing_tool:
        _console.print(
            "\n[yellow]Note:[/yellow] Without a mount tool only existing entitlement databases (--db) can be queried."
        )


@app.command(name="setup-mount")
def setup_mount() -> None:
    """Interactive mount setup (stores config in the user config .env)."""

    backend = typer.prompt(
        "Mount backend (auto, hdiutil, apfs-fuse)",
        default=MountBackend.AUTO.value,
        show_default=True,
    ).strip().lower()

    try:
        chosen = MountBackend(backend)
    except ValueError as exc:
        raise typer.BadParameter(f"unknown mount backend {backend!r}") from exc

    values: dict[str, str] = {"IPSW_ENT_MOUNT_BACKEND": chosen.value}
    resolved = chosen.resolve()
    if resolved is MountBackend.HDIUTIL:
        values["IPSW_ENT_HDIUTIL_PATH"] = typer.prompt("hdiutil path", default="hdiutil").strip()
    else:
        values["IPSW_ENT_APFS_FUSE_PATH"] = typer.prompt("apfs-fuse path", default="apfs-fuse").strip()
        values["IPSW_ENT_APFS_FUSE_OPTIONS"] = typer.prompt(
            "apfs-fuse -o options", default="", show_default=False
        ).strip()

    mount_root = typer.prompt("Mount root (empty = system temp dir)", default="", show_default=False).strip()
    if mount_root:
        values["IPSW_ENT_MOUNT_ROOT"] = mount_root

    env_path = write_user_env_vars(values)

    _console.print(f"[green]Saved mount config to:[/green] {env_path}")
