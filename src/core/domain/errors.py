"""Error hierarchy shared by the core and the adapters.

Fatal errors abort the command; the CLI turns any `EntitlementDBError` into a
message on stderr. `AbsentCategoryError`, `BinaryParseError` and
`UnmountError` are part of the normal flow and are handled by the core.
"""

from __future__ import annotations


class EntitlementDBError(Exception):
    """Base class for every error raised by ipsw-ent."""


class ArgumentError(EntitlementDBError):
    """Missing or conflicting query filters."""


class ArchiveParseError(EntitlementDBError):
    """The firmware archive or its build manifest could not be read."""


class AbsentCategoryError(EntitlementDBError):
    """The archive does not ship an image for the requested volume category."""


class NotFoundInArchiveError(EntitlementDBError):
    """No archive member matches the requested image name."""


class ExtractionError(EntitlementDBError):
    """The image could not be copied out of the archive."""


class MountError(EntitlementDBError):
    """The extracted image could not be mounted."""


class UnmountError(EntitlementDBError):
    """Detaching a mounted image failed."""


class WalkError(EntitlementDBError):
    """Traversing the mounted volume failed."""


class BinaryParseError(EntitlementDBError):
    """The file is not a Mach-O binary the reader understands."""


class EncodeError(EntitlementDBError):
    """The entitlement database could not be serialized."""


class WriteError(EntitlementDBError):
    """The entitlement database file could not be written."""


class DecodeError(EntitlementDBError):
    """The entitlement database file is unreadable, corrupt or incompatible."""


class PlistDecodeError(EntitlementDBError):
    """Raw entitlement text is not a valid property-list dictionary."""
