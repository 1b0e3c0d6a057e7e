"""Entitlement property-list decoding.

Turns raw entitlement XML (as stored in the database) into tagged
`EntitlementValue`s so callers switch on `kind` instead of Python types.
"""

from __future__ import annotations

import plistlib
from xml.parsers.expat import ExpatError

from core.domain.errors import PlistDecodeError
from core.domain.models import DecodedEntitlements, EntitlementValue


def decode_entitlements(text: str) -> DecodedEntitlements:
    """Decode one entitlement plist into a key -> tagged value map."""

    # Signature blobs are sometimes NUL padded.
    payload = text.rstrip("\x00").encode("utf-8")
    try:
        raw = plistlib.loads(payload)
    except (
        plistlib.InvalidFileException,
        ExpatError,
        ValueError,
        IndexError,
        AttributeError,
        TypeError,
    ) as exc:
        raise PlistDecodeError(str(exc) or "invalid property list") from exc

    if not isinstance(raw, dict):
        raise PlistDecodeError(f"expected a dictionary at the top level, got {type(raw).__name__}")

    return {str(key): EntitlementValue.from_native(value) for key, value in raw.items()}
