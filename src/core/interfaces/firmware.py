"""Contracts for the firmware collaborators.

Protocols define a structural contract (duck typing), so the zip/hdiutil/LIEF
adapters and the test fakes are interchangeable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from core.domain.models import DecodedEntitlements, VolumeCategory


@runtime_checkable
class VolumeResolver(Protocol):
    """Maps a volume category to the image name shipped in one archive."""

    def resolve(self, category: VolumeCategory) -> str:
        """Return the image file name, or raise `AbsentCategoryError`."""

        ...


@runtime_checkable
class ImageExtractor(Protocol):
    def extract(self, archive_path: Path, image_name: str) -> Path:
        """Copy the member whose base name matches `image_name` (case-insensitive)
        to a temporary file owned by the caller.

        Raises `NotFoundInArchiveError` or `ExtractionError`.
        """

        ...


@runtime_checkable
class VolumeMounter(Protocol):
    def mount(self, image_path: Path) -> Path:
        """Mount the image and return the mount point (`MountError` on failure)."""

        ...

    def unmount(self, mount_point: Path) -> None:
        """Detach a mount point (`UnmountError` on failure)."""

        ...


@runtime_checkable
class EntitlementHandle(Protocol):
    def entitlement_text(self) -> str:
        """Raw entitlement XML, or "" when the binary carries none."""

        ...


@runtime_checkable
class BinaryEntitlementReader(Protocol):
    def open(self, path: Path) -> EntitlementHandle:
        """Open an executable binary or raise `BinaryParseError`."""

        ...


@runtime_checkable
class PlistDecoder(Protocol):
    def __call__(self, text: str) -> DecodedEntitlements:
        """Decode raw entitlement text, or raise `PlistDecodeError`."""

        ...
