"""Core configuration.

Centralizes environment variables (pydantic-settings) so adapters (mounters,
extractors) and the CLI read the same values.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no extra dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "ipsw-ent"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "ipsw-ent"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "ipsw-ent"
    return Path.home() / ".config" / "ipsw-ent"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write or update variables in the user's global .env file."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# ipsw-ent user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class MountBackend(str, Enum):
    """How disk images get mounted."""

    AUTO = "auto"
    HDIUTIL = "hdiutil"
    APFS_FUSE = "apfs-fuse"

    def resolve(self) -> "MountBackend":
        """Pick a concrete backend for the running platform."""

        if self is not MountBackend.AUTO:
            return self
        return MountBackend.HDIUTIL if sys.platform == "darwin" else MountBackend.APFS_FUSE


class AppSettings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="IPSW_ENT_",
        extra="ignore",
        case_sensitive=False,
        # Order: project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    db_extension: str = Field(
        default=".entDB",
        min_length=2,
        pattern=r"^\.",
        description="Extension used to derive the cache path from the IPSW path.",
    )
    temp_dir: Path | None = Field(
        default=None,
        description="Where disk images are extracted (system temp dir when unset).",
    )
    mount_root: Path | None = Field(
        default=None,
        description="Parent directory for mount points (system temp dir when unset).",
    )
    mount_backend: MountBackend = Field(
        default=MountBackend.AUTO,
        description="Mount mechanism: hdiutil (macOS), apfs-fuse (Linux) or auto.",
    )
    hdiutil_path: str = Field(
        default="hdiutil",
        min_length=1,
        description="hdiutil executable.",
    )
    apfs_fuse_path: str = Field(
        default="apfs-fuse",
        min_length=1,
        description="apfs-fuse executable.",
    )
    apfs_fuse_options: str = Field(
        default="",
        description="Extra `-o` options handed to apfs-fuse (e.g. 'allow_other').",
    )
    fusermount_path: str = Field(
        default="fusermount",
        min_length=1,
        description="fusermount executable used to detach apfs-fuse mounts.",
    )
    force_unmount: bool = Field(
        default=False,
        description="Pass -force to hdiutil detach.",
    )
