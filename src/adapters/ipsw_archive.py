"""IPSW archive access.

An IPSW is a zip file. `BuildManifest.plist` at its root names the disk
image of each volume (`BuildIdentities[*].Manifest[<key>].Info.Path`); the
images themselves are members of the same zip.
"""

from __future__ import annotations

import os
import plistlib
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Any
from xml.parsers.expat import ExpatError

from core.domain.errors import (
    AbsentCategoryError,
    ArchiveParseError,
    ExtractionError,
    NotFoundInArchiveError,
)
from core.domain.models import VolumeCategory

BUILD_MANIFEST = "BuildManifest.plist"

_COPY_CHUNK = 4 * 1024 * 1024


def _member_basename(info: zipfile.ZipInfo) -> str:
    return PurePosixPath(info.filename).name


class BuildManifestResolver:
    """`VolumeResolver` reading the archive's BuildManifest."""

    def __init__(self, manifest: dict[str, Any], *, source: str = "IPSW") -> None:
        self._manifest = manifest
        self._source = source

    @classmethod
    def from_archive(cls, archive_path: Path) -> "BuildManifestResolver":
        try:
            with zipfile.ZipFile(archive_path) as archive:
                raw = archive.read(BUILD_MANIFEST)
        except KeyError as exc:
            raise ArchiveParseError(f"failed to parse IPSW: no {BUILD_MANIFEST} in {archive_path}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveParseError(f"failed to parse IPSW {archive_path}: {exc}") from exc

        try:
            manifest = plistlib.loads(raw)
        except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
            raise ArchiveParseError(f"failed to parse {BUILD_MANIFEST} in {archive_path}: {exc}") from exc
        if not isinstance(manifest, dict):
            raise ArchiveParseError(f"{BUILD_MANIFEST} in {archive_path} is not a dictionary")
        return cls(manifest, source=str(archive_path))

    def resolve(self, category: VolumeCategory) -> str:
        key = category.manifest_key
        identities = self._manifest.get("BuildIdentities") or []
        for identity in identities:
            if not isinstance(identity, dict):
                continue
            entry = (identity.get("Manifest") or {}).get(key)
            if not isinstance(entry, dict):
                continue
            info = entry.get("Info")
            path = info.get("Path") if isinstance(info, dict) else None
            if isinstance(path, str) and path:
                return PurePosixPath(path).name
        raise AbsentCategoryError(f"no {category.value} image ({key}) in {self._source}")


class ZipImageExtractor:
    """`ImageExtractor` copying one zip member to a temporary file."""

    def __init__(self, temp_dir: Path | None = None) -> None:
        self._temp_dir = temp_dir

    def extract(self, archive_path: Path, image_name: str) -> Path:
        wanted = image_name.lower()
        try:
            with zipfile.ZipFile(archive_path) as archive:
                member = next(
                    (
                        info
                        for info in archive.infolist()
                        if not info.is_dir() and _member_basename(info).lower() == wanted
                    ),
                    None,
                )
                if member is None:
                    raise NotFoundInArchiveError(f"failed to find {image_name} in IPSW")

                if self._temp_dir is not None:
                    self._temp_dir.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix="ipsw-ent-",
                    suffix=f"-{_member_basename(member)}",
                    dir=self._temp_dir,
                )
                target = Path(tmp_name)
                try:
                    with os.fdopen(fd, "wb") as out, archive.open(member) as src:
                        shutil.copyfileobj(src, out, _COPY_CHUNK)
                except BaseException:
                    target.unlink(missing_ok=True)
                    raise
        except (zipfile.BadZipFile, zlib.error, OSError) as exc:
            raise ExtractionError(f"failed to extract {image_name} from IPSW: {exc}") from exc
        return target
