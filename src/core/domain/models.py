"""Domain models (Pydantic v2).

These models describe *what* the scan produces and what queries return, not
*how* archives are opened or binaries parsed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

# Volume-root-relative path ("/System/Library/...") -> raw entitlement XML.
# "" means the binary was scanned and carries no entitlements.
EntitlementDatabase = Dict[str, str]


class VolumeCategory(str, Enum):
    """Role a disk image plays inside a firmware archive.

    Declaration order is the order the cache build visits them.
    """

    APP_OS = "AppOS"
    SYSTEM_OS = "SystemOS"
    FILESYSTEM = "filesystem"

    @property
    def manifest_key(self) -> str:
        """Key of this category in a BuildManifest identity."""

        return _MANIFEST_KEYS[self]


_MANIFEST_KEYS = {
    VolumeCategory.APP_OS: "Cryptex1,AppOS",
    VolumeCategory.SYSTEM_OS: "Cryptex1,SystemOS",
    VolumeCategory.FILESYSTEM: "OS",
}


class EntitlementKind(str, Enum):
    """Tag of a decoded entitlement value."""

    BOOLEAN = "boolean"
    STRING = "string"
    NUMBER = "number"
    ARRAY = "array"
    DICTIONARY = "dictionary"
    DATA = "data"
    DATE = "date"


class EntitlementValue(BaseModel):
    """One decoded entitlement value together with its kind."""

    model_config = ConfigDict(frozen=True)

    kind: EntitlementKind = Field(
        ...,
        description="Property-list type of the value.",
    )
    value: Any = Field(
        default=None,
        description="Native Python value as produced by the plist decoder.",
    )

    @classmethod
    def from_native(cls, value: object) -> "EntitlementValue":
        """Tag a value coming out of `plistlib`.

        Raises `TypeError` for anything a property list cannot hold.
        """

        # bool is a subclass of int: test it first.
        if isinstance(value, bool):
            return cls(kind=EntitlementKind.BOOLEAN, value=value)
        if isinstance(value, str):
            return cls(kind=EntitlementKind.STRING, value=value)
        if isinstance(value, (int, float)):
            return cls(kind=EntitlementKind.NUMBER, value=value)
        if isinstance(value, list):
            return cls(kind=EntitlementKind.ARRAY, value=value)
        if isinstance(value, dict):
            return cls(kind=EntitlementKind.DICTIONARY, value=value)
        if isinstance(value, bytes):
            return cls(kind=EntitlementKind.DATA, value=value)
        if isinstance(value, datetime):
            return cls(kind=EntitlementKind.DATE, value=value)
        raise TypeError(f"unsupported property-list value type {type(value).__name__}")

    @property
    def is_true(self) -> bool:
        return self.kind is EntitlementKind.BOOLEAN and self.value is True


DecodedEntitlements = Dict[str, EntitlementValue]


class FileMatch(BaseModel):
    """A database entry whose path matched a file search."""

    path: str = Field(
        ...,
        min_length=1,
        description="Volume-root-relative path of the binary.",
    )
    entitlements: str = Field(
        default="",
        description="Raw entitlement text; empty when the binary has none.",
    )

    @property
    def has_entitlements(self) -> bool:
        return bool(self.entitlements)


class EntitlementMatch(BaseModel):
    """A binary that sets a matching entitlement key to `true`."""

    key: str = Field(
        ...,
        min_length=1,
        description="Entitlement key that contains the search term.",
    )
    path: str = Field(
        ...,
        min_length=1,
        description="Volume-root-relative path of the binary.",
    )


class EntitlementSearchResult(BaseModel):
    """Rows of an entitlement search plus the non-fatal problems met on the way."""

    term: str = Field(
        ...,
        min_length=1,
        description="Entitlement key substring that was searched for.",
    )
    matches: list[EntitlementMatch] = Field(
        default_factory=list,
        description="One row per (key, path) with a true boolean value.",
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Matching keys whose value is not a boolean.",
    )
