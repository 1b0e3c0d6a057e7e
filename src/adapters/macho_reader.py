"""Mach-O entitlement reader (LIEF).

LIEF parses the binary and hands back the raw `LC_CODE_SIGNATURE` payload;
the embedded signature SuperBlob is then walked by hand to pull out the XML
entitlements slot. Layout constants come from xnu's `bsd/sys/codesign.h`.
"""

from __future__ import annotations

import struct
from pathlib import Path

import lief

from core.domain.errors import BinaryParseError

CSMAGIC_EMBEDDED_SIGNATURE = 0xFADE0CC0
CSMAGIC_EMBEDDED_ENTITLEMENTS = 0xFADE7171

CSSLOT_ENTITLEMENTS = 0x00005

# SuperBlob: magic, length, count; then `count` BlobIndex entries.
_SUPER_BLOB = struct.Struct(">III")
_BLOB_INDEX = struct.Struct(">II")
_BLOB_HEADER = struct.Struct(">II")


def extract_entitlements(signature: bytes) -> str:
    """Return the XML entitlements stored in an embedded signature, or ""."""

    if len(signature) < _SUPER_BLOB.size:
        return ""
    magic, _length, count = _SUPER_BLOB.unpack_from(signature, 0)
    if magic != CSMAGIC_EMBEDDED_SIGNATURE:
        return ""

    for index in range(count):
        entry_offset = _SUPER_BLOB.size + index * _BLOB_INDEX.size
        if entry_offset + _BLOB_INDEX.size > len(signature):
            break
        slot, blob_offset = _BLOB_INDEX.unpack_from(signature, entry_offset)
        if slot != CSSLOT_ENTITLEMENTS:
            continue
        if blob_offset + _BLOB_HEADER.size > len(signature):
            return ""
        blob_magic, blob_length = _BLOB_HEADER.unpack_from(signature, blob_offset)
        if blob_magic != CSMAGIC_EMBEDDED_ENTITLEMENTS or blob_length < _BLOB_HEADER.size:
            return ""
        data = signature[blob_offset + _BLOB_HEADER.size : blob_offset + blob_length]
        return data.decode("utf-8", errors="replace")
    return ""


class MachOEntitlements:
    """Entitlements of one parsed Mach-O."""

    def __init__(self, text: str) -> None:
        self._text = text

    def entitlement_text(self) -> str:
        return self._text


class LiefEntitlementReader:
    """`BinaryEntitlementReader` backed by LIEF.

    Fat binaries are read through their first slice.
    """

    def __init__(self, *, quiet: bool = True) -> None:
        if quiet:
            # Silences per-file parse errors.
            lief.logging.disable()

    def open(self, path: Path) -> MachOEntitlements:
        if not path.is_file():
            raise BinaryParseError(f"{path} is not a regular file")

        filename = str(path)
        try:
            if not lief.is_macho(filename):
                raise BinaryParseError(f"{path} is not a Mach-O")
            fat = lief.MachO.parse(filename, config=lief.MachO.ParserConfig.quick)
        except (RuntimeError, ValueError, OSError) as exc:
            raise BinaryParseError(f"failed to parse {path}: {exc}") from exc

        if fat is None or fat.size == 0:
            raise BinaryParseError(f"LIEF could not parse {path}")
        binary = fat.at(0)
        if binary is None:
            raise BinaryParseError(f"LIEF returned no slice for {path}")
        if binary.header.nb_cmds == 0:
            raise BinaryParseError(f"{path} has no load commands")

        if not binary.has_code_signature:
            return MachOEntitlements("")
        signature = bytes(binary.code_signature.content)
        return MachOEntitlements(extract_entitlements(signature))
