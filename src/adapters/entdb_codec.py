"""On-disk format of the entitlement database.

gzip-compressed binary property list holding a flat `dict[str, str]`. Keys
are sorted and the gzip header carries no timestamp or file name, so the
same database always produces the same bytes. There is no version field: an
incompatible file surfaces as a `DecodeError`.
"""

from __future__ import annotations

import gzip
import io
import plistlib
import zlib

from pydantic import TypeAdapter, ValidationError

from core.domain.errors import DecodeError, EncodeError
from core.domain.models import EntitlementDatabase

_DATABASE_ADAPTER: TypeAdapter[dict[str, str]] = TypeAdapter(dict[str, str])


def encode_database(database: EntitlementDatabase) -> bytes:
    """Serialize and compress `database`."""

    try:
        payload = plistlib.dumps(dict(database), fmt=plistlib.FMT_BINARY, sort_keys=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodeError(f"failed to encode entitlement db to binary: {exc}") from exc

    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0, filename="") as gz_handle:
        gz_handle.write(payload)
    return buffer.getvalue()


def decode_database(blob: bytes) -> EntitlementDatabase:
    """Decompress and decode bytes produced by `encode_database`."""

    try:
        payload = gzip.decompress(blob)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"failed to decompress entitlement database: {exc}") from exc

    try:
        raw = plistlib.loads(payload, fmt=plistlib.FMT_BINARY)
    except (plistlib.InvalidFileException, ValueError) as exc:
        raise DecodeError(f"failed to decode entitlement database: {exc}") from exc

    try:
        return _DATABASE_ADAPTER.validate_python(raw, strict=True)
    except ValidationError as exc:
        raise DecodeError(f"entitlement database has an unexpected layout: {exc}") from exc
