"""Queries over a loaded entitlement database.

Two modes, exactly one per invocation:
- file search: case-insensitive substring on the path, raw text returned;
- entitlement search: case-sensitive substring on the key, decoded lazily,
  only `true` booleans are reported.

Results are sorted so repeated runs print the same thing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from core.domain.errors import ArgumentError, PlistDecodeError
from core.domain.models import (
    EntitlementDatabase,
    EntitlementKind,
    EntitlementMatch,
    EntitlementSearchResult,
    FileMatch,
)
from core.interfaces.firmware import PlistDecoder

logger = logging.getLogger(__name__)


class QueryMode(str, Enum):
    ENTITLEMENT = "entitlement"
    FILE = "file"


@dataclass(frozen=True)
class QueryRequest:
    """A validated query: one mode and its search term."""

    mode: QueryMode
    term: str


def validate_query(entitlement: str | None, search_file: str | None) -> QueryRequest:
    """Select the query mode, rejecting zero or two filters."""

    entitlement = entitlement or ""
    search_file = search_file or ""
    if not entitlement and not search_file:
        raise ArgumentError("you must supply a --ent OR --file")
    if entitlement and search_file:
        raise ArgumentError("you can only use --ent OR --file (not both)")
    if entitlement:
        return QueryRequest(mode=QueryMode.ENTITLEMENT, term=entitlement)
    return QueryRequest(mode=QueryMode.FILE, term=search_file)


def search_files(database: EntitlementDatabase, term: str) -> list[FileMatch]:
    needle = term.lower()
    return [
        FileMatch(path=path, entitlements=text)
        for path, text in sorted(database.items())
        if needle in path.lower()
    ]


def search_entitlements(
    database: EntitlementDatabase,
    term: str,
    decoder: PlistDecoder,
) -> EntitlementSearchResult:
    """Find binaries that set an entitlement containing `term` to `true`.

    A decode failure aborts the whole search with `PlistDecodeError`; a
    matching key with a non-boolean value only adds a warning.
    """

    result = EntitlementSearchResult(term=term)
    for path, text in sorted(database.items()):
        # Raw-text pre-filter; decoding is the expensive part.
        if term not in text:
            continue
        try:
            decoded = decoder(text)
        except PlistDecodeError as exc:
            raise PlistDecodeError(f"failed to decode entitlements plist for {path}: {exc}") from exc
        for key in sorted(decoded):
            if term not in key:
                continue
            value = decoded[key]
            if value.kind is EntitlementKind.BOOLEAN:
                if value.is_true:
                    result.matches.append(EntitlementMatch(key=key, path=path))
            else:
                message = f"unhandled entitlement kind {value.kind.value} in {path}"
                logger.debug("%s (key %s)", message, key)
                result.warnings.append(message)
    return result
