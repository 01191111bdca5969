"""
Reading and writing individual source entry files.

Source files are UTF-8 JSON with 2-space indentation and a trailing
newline, so that re-serializing an unchanged document is a no-op for git.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict

from packsync.config import DEFAULT_FILE_MODE
from packsync.errors import MalformedEntryError


REQUIRED_KEYS = ("_id", "_key")


def validate_entry(entry: Any, path: str) -> Dict[str, Any]:
    """Ensure a parsed document carries a non-empty _id and _key.

    Raises:
        MalformedEntryError: If the document is not an object or lacks ids.
    """
    if not isinstance(entry, dict):
        raise MalformedEntryError(path, "not a JSON object")
    missing = [k for k in REQUIRED_KEYS if not entry.get(k)]
    if missing:
        raise MalformedEntryError(path, f"must have _id and _key (missing {', '.join(missing)})")
    return entry


def read_entry(path: str) -> Dict[str, Any]:
    """Parse and validate one source file.

    Raises:
        MalformedEntryError: On undecodable text, invalid JSON or missing ids.
        OSError: If the file cannot be read.
    """
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise MalformedEntryError(path, f"not valid UTF-8 (byte {e.start})")
    try:
        entry = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedEntryError(path, f"invalid JSON ({e.msg} at line {e.lineno})")
    return validate_entry(entry, path)


def format_entry(entry: Dict[str, Any]) -> str:
    """Serialize a document the way it is stored in the source tree."""
    return json.dumps(entry, indent=2, ensure_ascii=False) + "\n"


def write_entry(path: str, entry: Dict[str, Any], mode: int = DEFAULT_FILE_MODE) -> None:
    """Replace a source file with the serialized document.

    The old file is removed first so the new one is created with `mode`.
    Parent directories are created as needed.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(format_entry(entry))
