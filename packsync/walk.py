"""
Source tree traversal.
"""

import os
from typing import Iterator, List, Optional


def walk_dir(directory: str) -> Iterator[str]:
    """Yield every .json file below a directory, at any depth.

    Entries come back in directory listing order (not sorted). Each call
    starts a fresh traversal. Symlink cycles are not detected.
    """
    with os.scandir(directory) as entries:
        listing = list(entries)

    for entry in listing:
        entry_path = os.path.join(directory, entry.name)
        if entry.is_dir():
            yield from walk_dir(entry_path)
        elif os.path.splitext(entry.name)[1] == ".json":
            yield entry_path


def list_source_folders(src_root: str, pack_name: Optional[str] = None) -> List[str]:
    """Names of pack folders directly under the source root.

    Restricted to pack_name when given.
    """
    with os.scandir(src_root) as entries:
        return [
            e.name for e in entries
            if e.is_dir() and (not pack_name or pack_name == e.name)
        ]
