"""Shared fakes for the firmware collaborators.

Each fake implements one of the Protocols in `core.interfaces.firmware` and
records how it was used, so tests can assert on the amount of work done.
"""

from __future__ import annotations

import plistlib
from pathlib import Path
from typing import Iterable

import pytest

from core.domain.errors import (
    AbsentCategoryError,
    BinaryParseError,
    MountError,
    NotFoundInArchiveError,
    UnmountError,
)
from core.domain.models import VolumeCategory
from core.services.entitlement_scanner import EntitlementScanner, ScanSession

FAKE_MACHO_MAGIC = b"\xcf\xfa\xed\xfe"


def entitlements_xml(values: dict[str, object]) -> str:
    return plistlib.dumps(values).decode("utf-8")


def write_binary(path: Path, entitlements: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(FAKE_MACHO_MAGIC + entitlements.encode("utf-8"))
    return path


def write_text(path: Path, text: str = "hello\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class FakeHandle:
    def __init__(self, text: str) -> None:
        self._text = text

    def entitlement_text(self) -> str:
        return self._text


class FakeReader:
    """Files starting with the Mach-O magic are binaries; the rest is entitlement text."""

    def __init__(self) -> None:
        self.opened: list[Path] = []

    def open(self, path: Path) -> FakeHandle:
        self.opened.append(path)
        data = path.read_bytes()
        if not data.startswith(FAKE_MACHO_MAGIC):
            raise BinaryParseError(f"{path} is not a Mach-O")
        return FakeHandle(data[len(FAKE_MACHO_MAGIC):].decode("utf-8"))


class FakeExtractor:
    def __init__(self, workdir: Path, images: Iterable[str]) -> None:
        self.workdir = workdir
        self.images = list(images)
        self.extracted: list[Path] = []

    def extract(self, archive_path: Path, image_name: str) -> Path:
        match = next((name for name in self.images if name.lower() == image_name.lower()), None)
        if match is None:
            raise NotFoundInArchiveError(f"failed to find {image_name} in IPSW")
        self.workdir.mkdir(parents=True, exist_ok=True)
        target = self.workdir / f"extracted-{match}"
        target.write_bytes(b"disk image")
        self.extracted.append(target)
        return target


class FakeMounter:
    """Mounts an extracted image by handing back a prepared directory tree."""

    def __init__(self, volumes: dict[str, Path]) -> None:
        self.volumes = volumes
        self.mounted: list[Path] = []
        self.unmounted: list[Path] = []
        self.fail_mount = False
        self.fail_unmount = False

    def mount(self, image_path: Path) -> Path:
        if self.fail_mount:
            raise MountError(f"failed to mount DMG {image_path}")
        name = image_path.name.removeprefix("extracted-")
        root = self.volumes[name]
        self.mounted.append(root)
        return root

    def unmount(self, mount_point: Path) -> None:
        self.unmounted.append(mount_point)
        if self.fail_unmount:
            raise UnmountError(f"failed to unmount {mount_point}: resource busy")


class FakeResolver:
    def __init__(self, images: dict[VolumeCategory, str]) -> None:
        self.images = images
        self.calls: list[VolumeCategory] = []

    def resolve(self, category: VolumeCategory) -> str:
        self.calls.append(category)
        try:
            return self.images[category]
        except KeyError:
            raise AbsentCategoryError(f"no {category.value} image") from None


@pytest.fixture
def app_volume(tmp_path: Path) -> Path:
    root = tmp_path / "volumes" / "app"
    write_binary(
        root / "System" / "Library" / "CoreServices" / "SpringBoard.app" / "SpringBoard",
        entitlements_xml({"com.apple.springboard.launch": True}),
    )
    write_binary(root / "usr" / "libexec" / "nosigd")
    write_text(root / "etc" / "hosts")
    return root


@pytest.fixture
def system_volume(tmp_path: Path) -> Path:
    root = tmp_path / "volumes" / "system"
    write_binary(
        root / "usr" / "libexec" / "securityd",
        entitlements_xml({"com.apple.private.security.storage": True}),
    )
    return root


@pytest.fixture
def reader() -> FakeReader:
    return FakeReader()


@pytest.fixture
def extractor(tmp_path: Path) -> FakeExtractor:
    return FakeExtractor(tmp_path / "extracted", ["AppOS.dmg", "System.dmg"])


@pytest.fixture
def mounter(app_volume: Path, system_volume: Path) -> FakeMounter:
    return FakeMounter({"AppOS.dmg": app_volume, "System.dmg": system_volume})


@pytest.fixture
def scanner(extractor: FakeExtractor, mounter: FakeMounter, reader: FakeReader) -> EntitlementScanner:
    return EntitlementScanner(
        extractor=extractor,
        mounter=mounter,
        reader=reader,
        session=ScanSession(),
    )
