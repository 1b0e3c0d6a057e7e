"""Disk-image mounting.

- macOS: `hdiutil attach -noverify -nobrowse -mountpoint <dir> <image>`
- Linux: `apfs-fuse <image> <dir>`, detached with `fusermount -u`

Each mount gets a fresh directory under `mount_root` (system temp dir by
default) that is removed again after a successful unmount.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Sequence

from core.config import AppSettings, MountBackend
from core.domain.errors import MountError, UnmountError

logger = logging.getLogger(__name__)


def _run(cmd: Sequence[str]) -> subprocess.CompletedProcess[str]:
    logger.debug("running %s", " ".join(cmd))
    return subprocess.run(list(cmd), check=True, capture_output=True, text=True)


def _describe(exc: Exception) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        detail = (exc.stderr or exc.stdout or "").strip()
        return f"exit status {exc.returncode}: {detail}" if detail else f"exit status {exc.returncode}"
    return str(exc)


class _CommandMounter:
    """Shared mount-point bookkeeping; subclasses provide the commands."""

    def __init__(self, mount_root: Path | None = None) -> None:
        self._mount_root = mount_root

    def attach_command(self, image_path: Path, mount_point: Path) -> list[str]:
        raise NotImplementedError

    def detach_command(self, mount_point: Path) -> list[str]:
        raise NotImplementedError

    def mount(self, image_path: Path) -> Path:
        if self._mount_root is not None:
            self._mount_root.mkdir(parents=True, exist_ok=True)
        mount_point = Path(
            tempfile.mkdtemp(prefix=f"{image_path.stem}.", suffix=".mount", dir=self._mount_root)
        )
        try:
            _run(self.attach_command(image_path, mount_point))
        except (subprocess.CalledProcessError, OSError) as exc:
            mount_point.rmdir()
            raise MountError(f"failed to mount DMG {image_path}: {_describe(exc)}") from exc
        return mount_point

    def unmount(self, mount_point: Path) -> None:
        try:
            _run(self.detach_command(mount_point))
        except (subprocess.CalledProcessError, OSError) as exc:
            raise UnmountError(f"failed to unmount {mount_point}: {_describe(exc)}") from exc
        try:
            mount_point.rmdir()
        except OSError as exc:
            raise UnmountError(f"failed to remove mount point {mount_point}: {exc}") from exc


class HdiutilMounter(_CommandMounter):
    def __init__(
        self,
        mount_root: Path | None = None,
        *,
        hdiutil: str = "hdiutil",
        force: bool = False,
    ) -> None:
        super().__init__(mount_root)
        self._hdiutil = hdiutil
        self._force = force

    def attach_command(self, image_path: Path, mount_point: Path) -> list[str]:
        return [
            self._hdiutil,
            "attach",
            "-noverify",
            "-nobrowse",
            "-mountpoint",
            str(mount_point),
            str(image_path),
        ]

    def detach_command(self, mount_point: Path) -> list[str]:
        cmd = [self._hdiutil, "detach", str(mount_point)]
        if self._force:
            cmd.append("-force")
        return cmd


class ApfsFuseMounter(_CommandMounter):
    def __init__(
        self,
        mount_root: Path | None = None,
        *,
        apfs_fuse: str = "apfs-fuse",
        fusermount: str = "fusermount",
        options: str = "",
    ) -> None:
        super().__init__(mount_root)
        self._apfs_fuse = apfs_fuse
        self._fusermount = fusermount
        self._options = options.strip()

    def attach_command(self, image_path: Path, mount_point: Path) -> list[str]:
        cmd = [self._apfs_fuse]
        if self._options:
            cmd += ["-o", self._options]
        return cmd + [str(image_path), str(mount_point)]

    def detach_command(self, mount_point: Path) -> list[str]:
        return [self._fusermount, "-u", str(mount_point)]


def build_mounter(settings: AppSettings) -> _CommandMounter:
    """Mounter for the configured (or platform default) backend."""

    backend = settings.mount_backend.resolve()
    if backend is MountBackend.HDIUTIL:
        return HdiutilMounter(
            settings.mount_root,
            hdiutil=settings.hdiutil_path,
            force=settings.force_unmount,
        )
    return ApfsFuseMounter(
        settings.mount_root,
        apfs_fuse=settings.apfs_fuse_path,
        fusermount=settings.fusermount_path,
        options=settings.apfs_fuse_options,
    )
