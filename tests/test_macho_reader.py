from __future__ import annotations

import struct
from pathlib import Path

import pytest

from adapters.macho_reader import (
    CSMAGIC_EMBEDDED_ENTITLEMENTS,
    CSMAGIC_EMBEDDED_SIGNATURE,
    CSSLOT_ENTITLEMENTS,
    LiefEntitlementReader,
    extract_entitlements,
)
from conftest import entitlements_xml, write_text
from core.domain.errors import BinaryParseError

CSMAGIC_CODEDIRECTORY = 0xFADE0C02
CSSLOT_CODEDIRECTORY = 0


def _blob(magic: int, payload: bytes) -> bytes:
    return struct.pack(">II", magic, 8 + len(payload)) + payload


def _super_blob(slots: list[tuple[int, bytes]]) -> bytes:
    header_size = 12 + 8 * len(slots)
    index = b""
    body = b""
    for slot, blob in slots:
        index += struct.pack(">II", slot, header_size + len(body))
        body += blob
    return struct.pack(">III", CSMAGIC_EMBEDDED_SIGNATURE, header_size + len(body), len(slots)) + index + body


def test_entitlements_slot_is_extracted() -> None:
    xml = entitlements_xml({"com.apple.private.security.no-sandbox": True})
    signature = _super_blob(
        [
            (CSSLOT_CODEDIRECTORY, _blob(CSMAGIC_CODEDIRECTORY, b"\x00" * 32)),
            (CSSLOT_ENTITLEMENTS, _blob(CSMAGIC_EMBEDDED_ENTITLEMENTS, xml.encode("utf-8"))),
        ]
    )

    assert extract_entitlements(signature) == xml


def test_signature_without_entitlements_slot() -> None:
    signature = _super_blob([(CSSLOT_CODEDIRECTORY, _blob(CSMAGIC_CODEDIRECTORY, b"\x00" * 32))])

    assert extract_entitlements(signature) == ""


@pytest.mark.parametrize(
    "signature",
    [
        b"",
        b"\xfa\xde",
        struct.pack(">III", 0xDEADBEEF, 12, 0),
        # Index points past the end of the buffer.
        struct.pack(">III", CSMAGIC_EMBEDDED_SIGNATURE, 20, 1) + struct.pack(">II", CSSLOT_ENTITLEMENTS, 4096),
    ],
)
def test_malformed_signatures_yield_no_entitlements(signature: bytes) -> None:
    assert extract_entitlements(signature) == ""


def test_entitlements_slot_with_wrong_magic_is_ignored() -> None:
    signature = _super_blob([(CSSLOT_ENTITLEMENTS, _blob(0xFADE7172, b"\x30\x00"))])

    assert extract_entitlements(signature) == ""


def test_reader_rejects_non_binaries(tmp_path: Path) -> None:
    reader = LiefEntitlementReader()
    text_file = write_text(tmp_path / "Info.plist", "<plist/>")

    with pytest.raises(BinaryParseError):
        reader.open(text_file)


def test_reader_rejects_directories(tmp_path: Path) -> None:
    with pytest.raises(BinaryParseError):
        LiefEntitlementReader().open(tmp_path)


MH_MAGIC_64 = 0xFEEDFACF
FAT_MAGIC = 0xCAFEBABE
CPU_TYPE_ARM64 = 0x0100000C
MH_EXECUTE = 0x2
LC_SEGMENT_64 = 0x19
LC_CODE_SIGNATURE = 0x1D
LINKEDIT_OFFSET = 0x1000


def _thin_macho(signature: bytes | None) -> bytes:
    linkedit = signature if signature is not None else b"\x00" * 16
    commands = struct.pack(
        "<II16sQQQQiiII",
        LC_SEGMENT_64,
        72,
        b"__LINKEDIT",
        0x100000000,
        0x4000,
        LINKEDIT_OFFSET,
        len(linkedit),
        1,
        1,
        0,
        0,
    )
    if signature is not None:
        commands += struct.pack("<IIII", LC_CODE_SIGNATURE, 16, LINKEDIT_OFFSET, len(signature))
    ncmds = 2 if signature is not None else 1
    header = struct.pack("<IiiIIIII", MH_MAGIC_64, CPU_TYPE_ARM64, 0, MH_EXECUTE, ncmds, len(commands), 0, 0)
    return (header + commands).ljust(LINKEDIT_OFFSET, b"\x00") + linkedit


def _fat_macho(slice_data: bytes) -> bytes:
    offset = 0x4000
    header = struct.pack(">II", FAT_MAGIC, 1) + struct.pack(">iiIII", CPU_TYPE_ARM64, 0, offset, len(slice_data), 14)
    return header.ljust(offset, b"\x00") + slice_data


@pytest.fixture
def signed_entitlements() -> str:
    return entitlements_xml({"com.apple.private.security.no-sandbox": True})


def _signature(xml: str) -> bytes:
    return _super_blob(
        [
            (CSSLOT_CODEDIRECTORY, _blob(CSMAGIC_CODEDIRECTORY, b"\x00" * 32)),
            (CSSLOT_ENTITLEMENTS, _blob(CSMAGIC_EMBEDDED_ENTITLEMENTS, xml.encode("utf-8"))),
        ]
    )


def test_reader_returns_entitlements_of_signed_binary(tmp_path: Path, signed_entitlements: str) -> None:
    binary = tmp_path / "signed"
    binary.write_bytes(_thin_macho(_signature(signed_entitlements)))

    assert LiefEntitlementReader().open(binary).entitlement_text() == signed_entitlements


def test_reader_returns_empty_text_for_unsigned_binary(tmp_path: Path) -> None:
    binary = tmp_path / "unsigned"
    binary.write_bytes(_thin_macho(None))

    assert LiefEntitlementReader().open(binary).entitlement_text() == ""


def test_reader_uses_first_slice_of_fat_binary(tmp_path: Path, signed_entitlements: str) -> None:
    binary = tmp_path / "universal"
    binary.write_bytes(_fat_macho(_thin_macho(_signature(signed_entitlements))))

    assert LiefEntitlementReader().open(binary).entitlement_text() == signed_entitlements


def test_reader_rejects_header_without_load_commands(tmp_path: Path) -> None:
    binary = tmp_path / "hollow"
    header = struct.pack("<IiiIIIII", MH_MAGIC_64, CPU_TYPE_ARM64, 0, MH_EXECUTE, 0, 0, 0, 0)
    binary.write_bytes(header.ljust(LINKEDIT_OFFSET, b"\x00"))

    with pytest.raises(BinaryParseError):
        LiefEntitlementReader().open(binary)
