"""
Exceptions raised by packsync.

Per-entry problems (MalformedEntryError) are collected by the operation
that hit them and the run continues. Everything else aborts the operation
and is reported by the CLI.
"""


class PackSyncError(Exception):
    """Base class for packsync errors."""


class MalformedEntryError(PackSyncError):
    """A source file or pack record that cannot be used as a document."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class CyclicFolderError(PackSyncError):
    """Folder parent links loop back on themselves."""

    def __init__(self, folder_id: str):
        self.folder_id = folder_id
        super().__init__(f"Folder '{folder_id}' is part of a cyclic folder hierarchy")


class ManifestError(PackSyncError):
    """Package manifest is missing or malformed."""


class PackNotFoundError(PackSyncError):
    """A compiled pack does not exist on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Pack not found: {path}")
