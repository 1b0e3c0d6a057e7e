"""Entitlement database cache: build once, then load.

The decision is presence-based: if the cache file exists it is loaded as-is,
otherwise every volume category of the archive is scanned and the merged
result is written. A cache that no longer matches its archive is not
detected.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from adapters.entdb_codec import decode_database, encode_database
from core.config import AppSettings
from core.domain.errors import AbsentCategoryError, ArgumentError, DecodeError, WriteError
from core.domain.models import EntitlementDatabase, VolumeCategory
from core.interfaces.firmware import VolumeResolver
from core.services.entitlement_scanner import EntitlementScanner

logger = logging.getLogger(__name__)

CATEGORY_ORDER: tuple[VolumeCategory, ...] = (
    VolumeCategory.APP_OS,
    VolumeCategory.SYSTEM_OS,
    VolumeCategory.FILESYSTEM,
)

DEFAULT_DB_EXTENSION: str = AppSettings.model_fields["db_extension"].default


def resolve_cache_path(
    archive_path: Path,
    explicit_cache_path: Path | None = None,
    *,
    extension: str = DEFAULT_DB_EXTENSION,
) -> Path:
    """Explicit path when given, else the archive path with its suffix swapped."""

    if explicit_cache_path is not None:
        return explicit_cache_path
    try:
        return archive_path.with_suffix(extension)
    except ValueError as exc:
        raise ArgumentError(f"cannot derive an entitlement database path from {archive_path}: {exc}") from exc


class CacheStore:
    """Loads or builds the `EntitlementDatabase` of one archive."""

    def __init__(
        self,
        *,
        scanner: EntitlementScanner,
        resolver_factory: Callable[[Path], VolumeResolver],
        extension: str = DEFAULT_DB_EXTENSION,
        encode: Callable[[EntitlementDatabase], bytes] = encode_database,
        decode: Callable[[bytes], EntitlementDatabase] = decode_database,
    ) -> None:
        self._scanner = scanner
        self._resolver_factory = resolver_factory
        self._extension = extension
        self._encode = encode
        self._decode = decode

    def cache_path_for(self, archive_path: Path, explicit_cache_path: Path | None = None) -> Path:
        return resolve_cache_path(archive_path, explicit_cache_path, extension=self._extension)

    def load_or_build(
        self,
        archive_path: Path,
        explicit_cache_path: Path | None = None,
    ) -> EntitlementDatabase:
        cache_path = self.cache_path_for(archive_path, explicit_cache_path)
        if cache_path.exists():
            logger.info("Found ipsw entitlement database file...")
            return self.load(cache_path)

        logger.info("Generating entitlement database file...")
        database = self.build(archive_path)
        self.write(database, cache_path)
        return database

    def build(self, archive_path: Path) -> EntitlementDatabase:
        """Scan every category present in the archive and merge the results.

        A path seen in two categories keeps the value of the later one.
        """

        resolver = self._resolver_factory(archive_path)
        database: EntitlementDatabase = {}
        for category in CATEGORY_ORDER:
            try:
                image_name = resolver.resolve(category)
            except AbsentCategoryError as exc:
                logger.debug("skipping %s: %s", category.value, exc)
                continue
            database.update(self._scanner.scan_volume(archive_path, image_name, category))
        return database

    def write(self, database: EntitlementDatabase, cache_path: Path) -> None:
        blob = self._encode(database)
        tmp_path = cache_path.with_name(cache_path.name + ".tmp")
        try:
            tmp_path.write_bytes(blob)
            os.replace(tmp_path, cache_path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise WriteError(f"failed to write entitlement db to {cache_path}: {exc}") from exc
        logger.debug("wrote %d entries to %s", len(database), cache_path)

    def load(self, cache_path: Path) -> EntitlementDatabase:
        try:
            blob = cache_path.read_bytes()
        except OSError as exc:
            raise DecodeError(f"failed to open entitlement database file {cache_path}: {exc}") from exc
        return self._decode(blob)
