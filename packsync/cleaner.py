"""
Entry cleaning for packsync.

Strips session- and environment-specific data from documents so that
source files only change when content changes:
- ownership reset to a fixed default
- import/export provenance flags removed
- sort order zeroed
- empty flag namespaces pruned
- _stats editor and export source replaced

Used on every document going into a pack, coming out of a pack, and by
the in-place `clean` action.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from packsync.config import DEFAULT_LAST_MODIFIED_BY, DEFAULT_FILE_MODE, ProjectConfig
from packsync.entries import read_entry, write_entry
from packsync.errors import MalformedEntryError
from packsync.strings import clean_string
from packsync.walk import list_source_folders, walk_dir

logger = logging.getLogger(__name__)


# Embedded collections cleaned along with their parent, and the default
# ownership each level is reset to.
CHILD_COLLECTIONS: Tuple[Tuple[str, int], ...] = (
    ("pages", -1),
    ("categories", 0),
    ("results", 0),
    ("items", 0),
    ("effects", 0),
)

_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def _parse_int(value: Any) -> Optional[int]:
    """Leading integer of a number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group()) if match else None
    return None


def clean_pack_entry(
    data: Dict[str, Any],
    ownership: int = 0,
    last_modified_by: str = DEFAULT_LAST_MODIFIED_BY,
) -> Dict[str, Any]:
    """Remove unwanted flags, permissions, and other data from a document.

    Mutates `data` in place and returns it. Missing or malformed optional
    fields are left alone.

    Args:
        data: Document to clean
        ownership: Value to reset default ownership to
        last_modified_by: Placeholder user id for _stats.lastModifiedBy
    """
    current = data.get("ownership")
    if current or isinstance(current, (dict, list)):
        data["ownership"] = {"default": ownership}

    flags = data.get("flags")
    if isinstance(flags, dict):
        core = flags.get("core")
        if isinstance(core, dict):
            core.pop("sourceId", None)
        flags.pop("importSource", None)
        flags.pop("exportSource", None)

    sort = _parse_int(data.get("sort"))
    if sort:
        data["sort"] = 0

    # Remove empty entries in flags
    if flags is None:
        data["flags"] = flags = {}
    if isinstance(flags, dict):
        for key in [k for k, v in flags.items() if isinstance(v, dict) and not v]:
            del flags[key]

    for collection, child_ownership in CHILD_COLLECTIONS:
        children = data.get(collection)
        if not isinstance(children, list):
            continue
        for child in children:
            if isinstance(child, dict):
                clean_pack_entry(child, ownership=child_ownership, last_modified_by=last_modified_by)

    name = data.get("name")
    if isinstance(name, str) and name:
        data["name"] = clean_string(name)

    stats = data.get("_stats")
    if isinstance(stats, dict):
        stats["lastModifiedBy"] = last_modified_by
        stats["exportSource"] = None

    return data


def name_matches(entry: Dict[str, Any], entry_name: Optional[str]) -> bool:
    """Case-insensitive exact match on the document name. No filter matches all."""
    if not entry_name:
        return True
    name = entry.get("name")
    return isinstance(name, str) and name.lower() == entry_name.lower()


@dataclass
class CleanResult:
    """Result of cleaning one pack's source folder."""
    pack: str
    cleaned: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # Filtered out by name
    errors: List[MalformedEntryError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pack": self.pack,
            "cleaned": self.cleaned,
            "skipped": self.skipped,
            "errors": [{"path": e.path, "reason": e.reason} for e in self.errors],
        }


def clean_pack(
    source_dir: str,
    entry_name: Optional[str] = None,
    last_modified_by: str = DEFAULT_LAST_MODIFIED_BY,
    file_mode: int = DEFAULT_FILE_MODE,
    pack: Optional[str] = None,
) -> CleanResult:
    """Clean and reformat every source JSON file of one pack in place.

    Files without _id/_key or with invalid JSON are reported in
    CleanResult.errors and left untouched on disk.
    """
    result = CleanResult(pack=pack or source_dir)

    for src in walk_dir(source_dir):
        try:
            entry = read_entry(src)
        except MalformedEntryError as e:
            logger.debug(f"Failed to clean {src}: {e.reason}")
            result.errors.append(e)
            continue

        if not name_matches(entry, entry_name):
            result.skipped.append(src)
            continue

        clean_pack_entry(entry, last_modified_by=last_modified_by)
        write_entry(src, entry, mode=file_mode)
        logger.debug(f"Cleaned {src}")
        result.cleaned.append(src)

    return result


def clean_packs(
    config: ProjectConfig,
    pack_name: Optional[str] = None,
    entry_name: Optional[str] = None,
    on_start: Optional[Callable[[str], None]] = None,
) -> Iterator[CleanResult]:
    """Clean the source files of every pack folder, or only `pack_name`.

    Yields one CleanResult per pack folder as it finishes. `on_start` is
    called with each pack name before that pack is touched.

    Raises:
        FileNotFoundError: If the source root does not exist.
    """
    src_root = str(config.src_path)
    for folder in list_source_folders(src_root, pack_name):
        if on_start is not None:
            on_start(folder)
        yield clean_pack(
            str(config.src_path / folder),
            entry_name=entry_name,
            last_modified_by=config.last_modified_by,
            file_mode=config.file_mode,
            pack=folder,
        )
