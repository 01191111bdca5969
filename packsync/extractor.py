"""
Extract packs into source JSON files.

Extraction reads each pack twice. The first pass only collects folders,
because a document's output path depends on its whole folder chain and
folders can come after the documents they contain. The second pass
cleans and writes every document:

    <folder>/<subfolder>/_folder.json
    <folder>/<subfolder>/<slug(name)>-<_id>.json

Usage:
    packsync package unpack                   # Every pack in the manifest
    packsync package unpack spells            # One pack
    packsync package unpack spells Fireball   # One entry of one pack
"""

import logging
import os
from typing import Any, Callable, Dict, Iterator, Optional

from packsync.cleaner import clean_pack_entry, name_matches
from packsync.config import DEFAULT_FILE_MODE, DEFAULT_LAST_MODIFIED_BY, ProjectConfig
from packsync.folders import FOLDER_FILE_NAME, FolderInfo, is_folder, resolve_folder_paths
from packsync.manifest import find_manifest, load_manifest
from packsync.storage import ExtractResult, extract_pack, iter_entries, pack_path
from packsync.strings import slugify

logger = logging.getLogger(__name__)


def collect_folders(db_path: str) -> Dict[str, FolderInfo]:
    """First pass: index every folder in a pack by _id, with resolved paths."""
    folders: Dict[str, FolderInfo] = {}
    for entry in iter_entries(db_path):
        if is_folder(entry):
            folders[entry["_id"]] = FolderInfo(
                name=slugify(entry.get("name") or ""),
                folder=entry.get("folder"),
            )
    return resolve_folder_paths(folders)


def entry_path(entry: Dict[str, Any], folders: Dict[str, FolderInfo]) -> str:
    """Output path of a document relative to the pack's source folder."""
    if entry["_id"] in folders:
        return os.path.join(folders[entry["_id"]].path, FOLDER_FILE_NAME)

    output_name = slugify(entry.get("name") or "")
    parent = folders.get(entry.get("folder"))
    return os.path.join(parent.path if parent else "", f"{output_name}-{entry['_id']}.json")


def extract_pack_to_source(
    db_path: str,
    dest: str,
    entry_name: Optional[str] = None,
    last_modified_by: str = DEFAULT_LAST_MODIFIED_BY,
    file_mode: int = DEFAULT_FILE_MODE,
) -> ExtractResult:
    """Extract one pack into `dest`, cleaning every document on the way.

    Without an entry filter, files under `dest` that no longer correspond
    to a document are removed. With a filter only the matching documents
    are written and nothing is removed.

    Raises:
        PackNotFoundError: If the pack file does not exist.
        CyclicFolderError: If the pack's folders form a cycle.
    """
    folders = collect_folders(db_path)

    def transform(entry):
        if not name_matches(entry, entry_name):
            return False
        clean_pack_entry(entry, last_modified_by=last_modified_by)

    return extract_pack(
        db_path,
        dest,
        transform_entry=transform,
        transform_name=lambda entry: entry_path(entry, folders),
        clean=not entry_name,
        file_mode=file_mode,
    )


def extract_packs(
    config: ProjectConfig,
    pack_name: Optional[str] = None,
    entry_name: Optional[str] = None,
    on_start: Optional[Callable[[str], None]] = None,
) -> Iterator[ExtractResult]:
    """Extract each pack listed in the manifest (or only `pack_name`).

    `on_start` is called with each pack name before that pack is read.

    Raises:
        ManifestError: If the manifest is missing or malformed.
    """
    manifest = load_manifest(find_manifest(config))

    for pack_info in manifest.select(pack_name):
        db_path = pack_path(str(config.dest_path), pack_info.name)
        dest = str(config.src_path / pack_info.name)
        logger.debug(f"Extracting {db_path} -> {dest}")
        if on_start is not None:
            on_start(pack_info.name)
        yield extract_pack_to_source(
            db_path,
            dest,
            entry_name=entry_name,
            last_modified_by=config.last_modified_by,
            file_mode=config.file_mode,
        )
