"""
Compile source folders into packs.

Usage:
    packsync package pack            # Compile every source folder
    packsync package pack spells     # Only compile src/spells
"""

import logging
from typing import Callable, Iterator, Optional

from packsync.cleaner import clean_pack_entry
from packsync.config import ProjectConfig
from packsync.storage import CompileResult, compile_pack, pack_path
from packsync.walk import list_source_folders

logger = logging.getLogger(__name__)


def compile_packs(
    config: ProjectConfig,
    pack_name: Optional[str] = None,
    on_start: Optional[Callable[[str], None]] = None,
) -> Iterator[CompileResult]:
    """Compile each source folder (or only `pack_name`) into its pack.

    Every document is cleaned as it is read. Yields one CompileResult per
    pack, calling `on_start` with the pack name before compiling it. A
    failure part way through propagates; packs already compiled stay
    compiled.

    Raises:
        FileNotFoundError: If the source root does not exist.
    """
    src_root = config.src_path
    dest_root = config.dest_path

    def transform(entry):
        clean_pack_entry(entry, last_modified_by=config.last_modified_by)

    for folder in list_source_folders(str(src_root), pack_name):
        src = src_root / folder
        dest = pack_path(str(dest_root), folder)
        logger.debug(f"Compiling {src} -> {dest}")
        if on_start is not None:
            on_start(folder)
        yield compile_pack(str(src), dest, transform_entry=transform, recursive=True)
