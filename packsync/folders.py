"""
Folder hierarchy reconstruction.

Packs store folders as flat records that point at their parent by id.
The extractor needs each folder's full directory path before it can place
any document, so folder paths are resolved up front from a plain
id -> FolderInfo index.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from packsync.errors import CyclicFolderError


FOLDER_KEY_PREFIX = "!folders"
FOLDER_FILE_NAME = "_folder.json"


@dataclass
class FolderInfo:
    """A folder as seen during extraction."""
    name: str  # Already slugified
    folder: Optional[str] = None  # Parent folder _id
    path: str = ""


def is_folder(entry: dict) -> bool:
    """Check if a document is a folder record."""
    return str(entry.get("_key", "")).startswith(FOLDER_KEY_PREFIX)


def build_path(folders: Dict[str, FolderInfo], folder_id: str) -> str:
    """Join a folder's name onto its ancestors' names, root first.

    A missing parent ends the walk and is treated as the root.

    Raises:
        CyclicFolderError: If the parent chain revisits a folder.
    """
    entry = folders[folder_id]
    parts = [entry.name]
    visited = {folder_id}

    parent_id = entry.folder
    while parent_id and parent_id in folders:
        if parent_id in visited:
            raise CyclicFolderError(folder_id)
        visited.add(parent_id)
        parent = folders[parent_id]
        parts.append(parent.name)
        parent_id = parent.folder

    return os.path.join(*reversed(parts))


def resolve_folder_paths(folders: Dict[str, FolderInfo]) -> Dict[str, FolderInfo]:
    """Fill in FolderInfo.path for every folder. Returns the same mapping."""
    for folder_id, info in folders.items():
        info.path = build_path(folders, folder_id)
    return folders
