"""Per-volume entitlement scanning.

One call extracts a disk image from the archive, mounts it, walks every file
and asks the binary reader for its entitlements. The temporary image and the
mount point never outlive the call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from core.domain.errors import BinaryParseError, UnmountError, WalkError
from core.domain.models import EntitlementDatabase, VolumeCategory
from core.interfaces.firmware import BinaryEntitlementReader, ImageExtractor, VolumeMounter

logger = logging.getLogger(__name__)


@dataclass
class ScanSession:
    """Image names already scanned during the current invocation."""

    scanned: set[str] = field(default_factory=set)

    def has_scanned(self, image_name: str) -> bool:
        return image_name in self.scanned

    def mark_scanned(self, image_name: str) -> None:
        self.scanned.add(image_name)


def relative_key(path: Path, mount_point: Path) -> str:
    """Database key for `path`: POSIX, rooted at the mount point, leading slash.

    Undecodable name bytes are kept as backslash escapes so the key stays
    valid UTF-8.
    """

    key = "/" + path.relative_to(mount_point).as_posix()
    return key.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


def _raise_walk_error(exc: OSError) -> None:
    raise exc


def walk_files(root: Path) -> list[Path]:
    """Every non-directory entry below `root`, symlinks included (not followed)."""

    files: list[Path] = []
    try:
        for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
            base = Path(dirpath)
            files.extend(base / name for name in filenames)
    except OSError as exc:
        raise WalkError(f"failed to walk files in dir {root}: {exc}") from exc
    return files


class EntitlementScanner:
    """Scans volumes of one archive, at most once per image name per session."""

    def __init__(
        self,
        *,
        extractor: ImageExtractor,
        mounter: VolumeMounter,
        reader: BinaryEntitlementReader,
        session: ScanSession | None = None,
    ) -> None:
        self._extractor = extractor
        self._mounter = mounter
        self._reader = reader
        self.session = session or ScanSession()

    def scan_volume(
        self,
        archive_path: Path,
        image_name: str,
        category: VolumeCategory,
    ) -> EntitlementDatabase:
        if self.session.has_scanned(image_name):
            logger.debug("%s (%s) already scanned, skipping", image_name, category.value)
            return {}

        image_path = self._extractor.extract(archive_path, image_name)
        try:
            entitlements = self._scan_image(image_path, category)
        finally:
            image_path.unlink(missing_ok=True)

        self.session.mark_scanned(image_name)
        return entitlements

    def _scan_image(self, image_path: Path, category: VolumeCategory) -> EntitlementDatabase:
        logger.info("Mounting %s %s", category.value, image_path)
        mount_point = self._mounter.mount(image_path)
        try:
            files = walk_files(mount_point)
            return self._collect(files, mount_point)
        finally:
            logger.info("Unmounting %s", image_path)
            try:
                self._mounter.unmount(mount_point)
            except UnmountError as exc:
                logger.warning("failed to unmount DMG at %s: %s", image_path, exc)

    def _collect(self, files: list[Path], mount_point: Path) -> EntitlementDatabase:
        entitlements: EntitlementDatabase = {}
        for path in files:
            try:
                handle = self._reader.open(path)
            except BinaryParseError:
                continue
            entitlements[relative_key(path, mount_point)] = handle.entitlement_text()
        logger.debug("found %d binaries under %s", len(entitlements), mount_point)
        return entitlements
