"""
SQLite storage layer for compiled packs.

Each pack is a single database file holding one row per document, keyed
by the document's _key. Embedded documents are split out into their own
rows so the runtime can address them directly:

    !actors!<actorId>                       the actor, items -> [<itemId>, ...]
    !actors.items!<actorId>.<itemId>        one embedded item
    !actors.items.effects!<a>.<i>.<effect>  an effect on that item

compile_pack() and extract_pack() are the only entry points the rest of
packsync needs; iter_entries() reassembles embedded documents on the way
out so callers always see whole documents.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from packsync.config import DEFAULT_FILE_MODE
from packsync.entries import read_entry, write_entry
from packsync.errors import MalformedEntryError, PackNotFoundError
from packsync.strings import slugify
from packsync.walk import walk_dir

logger = logging.getLogger(__name__)


# Schema version for migrations
SCHEMA_VERSION = 1

PACK_EXTENSION = ".db"

# Embedded collections per top-level document collection
HIERARCHY: Dict[str, Tuple[str, ...]] = {
    "actors": ("items", "effects"),
    "cards": ("cards",),
    "combats": ("combatants",),
    "items": ("effects",),
    "journal": ("pages", "categories"),
    "playlists": ("sounds",),
    "scenes": (
        "drawings", "tokens", "lights", "notes", "regions",
        "sounds", "templates", "tiles", "walls",
    ),
    "tables": ("results",),
}

# Embedded collections that carry embedded collections of their own
EMBEDDED_HIERARCHY: Dict[str, Tuple[str, ...]] = {
    "items": ("effects",),
}

TransformEntry = Callable[[Dict[str, Any]], Optional[bool]]
TransformName = Callable[[Dict[str, Any]], str]


def pack_path(dest_root: str, name: str) -> str:
    """Path of the compiled pack file for a pack name."""
    return os.path.join(dest_root, name + PACK_EXTENSION)


def parse_key(key: str) -> Tuple[str, str]:
    """Split '!actors.items!a.i' into ('actors.items', 'a.i')."""
    parts = key.split("!")
    if len(parts) != 3 or parts[0] or not parts[1] or not parts[2]:
        raise ValueError(f"Invalid document key: {key!r}")
    return parts[1], parts[2]


@contextmanager
def get_connection(db_path: str, readonly: bool = False) -> Iterator[sqlite3.Connection]:
    """Open a pack database.

    Read-only connections refuse to create a missing file.
    """
    if readonly:
        if not os.path.exists(db_path):
            raise PackNotFoundError(db_path)
        uri = Path(db_path).resolve().as_uri() + "?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
    else:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(db_path)

    try:
        yield conn
    finally:
        conn.close()


def init_db(conn: sqlite3.Connection) -> None:
    """Create the pack schema. Safe to call multiple times."""
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS entries (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
    """)
    conn.execute("INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    conn.commit()


# =============================================================================
# Flattening
# =============================================================================

def flatten_entry(entry: Dict[str, Any], path: str = "") -> List[Tuple[str, Dict[str, Any]]]:
    """Split a document into (key, record) rows, embedded documents last.

    The input is not modified. Embedded lists in the parent record are
    replaced by the ids of their documents.

    Raises:
        MalformedEntryError: If the key is invalid or an embedded document
            has no _id.
    """
    try:
        collection, doc_id = parse_key(entry["_key"])
    except ValueError as e:
        raise MalformedEntryError(path, str(e))
    return _flatten(entry, collection, doc_id, HIERARCHY.get(collection, ()), path)


def _flatten(entry, sublevel, id_path, embedded, path):
    record = dict(entry)
    record["_key"] = f"!{sublevel}!{id_path}"
    rows = [(record["_key"], record)]

    for name in embedded:
        children = entry.get(name)
        if not isinstance(children, list):
            continue
        ids = []
        for child in children:
            if not isinstance(child, dict) or not child.get("_id"):
                raise MalformedEntryError(path, f"embedded {name} document without _id")
            ids.append(child["_id"])
            rows.extend(_flatten(
                child,
                f"{sublevel}.{name}",
                f"{id_path}.{child['_id']}",
                EMBEDDED_HIERARCHY.get(name, ()),
                path,
            ))
        record[name] = ids

    return rows


def _expand(conn: sqlite3.Connection, record: Dict[str, Any], embedded: Tuple[str, ...]) -> Dict[str, Any]:
    """Replace embedded id lists in a record with the stored documents."""
    sublevel, id_path = parse_key(record["_key"])

    for name in embedded:
        ids = record.get(name)
        if not isinstance(ids, list):
            continue
        children = []
        for child_id in ids:
            key = f"!{sublevel}.{name}!{id_path}.{child_id}"
            row = conn.execute("SELECT value FROM entries WHERE key = ?", (key,)).fetchone()
            if row is None:
                logger.warning(f"Missing embedded document {key}")
                continue
            child = json.loads(row[0])
            children.append(_expand(conn, child, EMBEDDED_HIERARCHY.get(name, ())))
        record[name] = children

    return record


# =============================================================================
# Compile
# =============================================================================

@dataclass
class CompileResult:
    """Result of compiling one source folder."""
    pack: str
    keys: List[str] = field(default_factory=list)  # Top-level document keys written
    errors: List[MalformedEntryError] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return len(self.keys)


def load_entries(
    src: str,
    transform_entry: Optional[TransformEntry] = None,
    recursive: bool = True,
    result: Optional[CompileResult] = None,
) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Read (path, document) pairs from a source folder.

    Malformed files are recorded on `result` (when given) and skipped.
    A transform returning False drops the document.
    """
    if recursive:
        files = walk_dir(src)
    else:
        files = (
            os.path.join(src, name) for name in os.listdir(src)
            if name.endswith(".json") and os.path.isfile(os.path.join(src, name))
        )

    for file_path in files:
        try:
            entry = read_entry(file_path)
        except MalformedEntryError as e:
            logger.debug(f"Skipping {file_path}: {e.reason}")
            if result is not None:
                result.errors.append(e)
            continue
        if transform_entry is not None and transform_entry(entry) is False:
            continue
        yield file_path, entry


def compile_pack(
    src: str,
    dest: str,
    transform_entry: Optional[TransformEntry] = None,
    recursive: bool = True,
) -> CompileResult:
    """Compile a folder of source JSON files into a pack file.

    The pack is built next to `dest` and swapped in with os.replace, so
    an existing pack is only replaced once the new one is complete.

    Raises:
        FileNotFoundError: If `src` does not exist.
        sqlite3.Error: If the pack cannot be written.
    """
    result = CompileResult(pack=os.path.splitext(os.path.basename(dest))[0])
    tmp_path = dest + ".tmp"
    if os.path.exists(tmp_path):
        os.remove(tmp_path)

    try:
        with get_connection(tmp_path) as conn:
            init_db(conn)
            for file_path, entry in load_entries(src, transform_entry, recursive, result):
                try:
                    rows = flatten_entry(entry, file_path)
                except MalformedEntryError as e:
                    logger.debug(f"Skipping {file_path}: {e.reason}")
                    result.errors.append(e)
                    continue

                top_key = rows[0][0]
                if top_key in result.keys:
                    logger.warning(f"Duplicate key {top_key} in {file_path}, replacing earlier entry")
                else:
                    result.keys.append(top_key)

                conn.executemany(
                    "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)",
                    [(key, json.dumps(record, ensure_ascii=False)) for key, record in rows],
                )
                logger.debug(f"Packed {top_key} from {file_path}")
            conn.commit()
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

    os.replace(tmp_path, dest)
    return result


# =============================================================================
# Extract
# =============================================================================

def iter_entries(db_path: str) -> Iterator[Dict[str, Any]]:
    """Yield every top-level document in a pack, in key order.

    Embedded documents are folded back into their parents.

    Raises:
        PackNotFoundError: If the pack file does not exist.
    """
    with get_connection(db_path, readonly=True) as conn:
        rows = conn.execute("SELECT key, value FROM entries ORDER BY key").fetchall()
        for key, value in rows:
            collection, _ = parse_key(key)
            if "." in collection:
                continue
            yield _expand(conn, json.loads(value), HIERARCHY.get(collection, ()))


def default_name(entry: Dict[str, Any]) -> str:
    """Fallback file name for an extracted document."""
    name = slugify(entry.get("name") or "")
    return f"{name}-{entry['_id']}.json" if name else f"{entry['_id']}.json"


@dataclass
class ExtractResult:
    """Result of extracting one pack."""
    pack: str
    written: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # Document keys dropped by transform
    removed: List[str] = field(default_factory=list)  # Stale files deleted in clean mode


def extract_pack(
    db_path: str,
    dest: str,
    transform_entry: Optional[TransformEntry] = None,
    transform_name: Optional[TransformName] = None,
    clean: bool = False,
    file_mode: int = DEFAULT_FILE_MODE,
) -> ExtractResult:
    """Write every document in a pack to its own JSON file under `dest`.

    Args:
        db_path: Compiled pack file
        dest: Output directory
        transform_entry: Called with each document before writing; returning
            False skips it. May modify the document.
        transform_name: Returns the output path relative to `dest`
        clean: Delete .json files under `dest` that were not written
        file_mode: Permission bits for created files
    """
    result = ExtractResult(pack=os.path.basename(dest))
    written = set()

    for entry in iter_entries(db_path):
        if transform_entry is not None and transform_entry(entry) is False:
            result.skipped.append(entry["_key"])
            continue

        relative = transform_name(entry) if transform_name else default_name(entry)
        out_path = os.path.join(dest, relative)
        write_entry(out_path, entry, mode=file_mode)
        written.add(os.path.normpath(out_path))
        result.written.append(out_path)
        logger.debug(f"Extracted {entry['_key']} to {out_path}")

    if clean and os.path.isdir(dest):
        result.removed = remove_stale_files(dest, written)

    return result


def remove_stale_files(dest: str, keep: set) -> List[str]:
    """Delete .json files under dest not in `keep`, then prune empty dirs."""
    removed = [p for p in walk_dir(dest) if os.path.normpath(p) not in keep]
    for stale in removed:
        os.remove(stale)
        logger.debug(f"Removed stale file {stale}")

    for dirpath, _dirnames, _filenames in os.walk(dest, topdown=False):
        if dirpath != dest and not os.listdir(dirpath):
            os.rmdir(dirpath)

    return removed
