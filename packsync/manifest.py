"""
Package manifest loading.

The manifest (module.json or system.json) lists the packs a package ships.
Extraction reads it to know which packs exist; packsync never writes it.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from packsync.config import ProjectConfig
from packsync.errors import ManifestError


MANIFEST_NAMES = ("module.json", "system.json")


@dataclass
class PackInfo:
    """One entry of the manifest's packs array."""
    name: str
    label: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PackInfo":
        return cls(
            name=data["name"],
            label=data.get("label", ""),
            type=data.get("type", ""),
        )


@dataclass
class PackageManifest:
    """The parts of a package manifest packsync cares about."""
    id: str
    path: str
    packs: List[PackInfo] = field(default_factory=list)

    def select(self, pack_name: Optional[str] = None) -> List[PackInfo]:
        """Packs to process: all of them, or only `pack_name`."""
        return [p for p in self.packs if not pack_name or p.name == pack_name]


def find_manifest(config: ProjectConfig) -> Path:
    """Locate the manifest: the configured path, else module.json / system.json.

    Raises:
        ManifestError: If no manifest exists.
    """
    root = Path(config.root)
    if config.manifest:
        path = root / config.manifest
        if not path.exists():
            raise ManifestError(f"Manifest not found: {path}")
        return path

    for name in MANIFEST_NAMES:
        path = root / name
        if path.exists():
            return path

    raise ManifestError(f"No {' or '.join(MANIFEST_NAMES)} found in {root}")


def load_manifest(path: Path) -> PackageManifest:
    """Parse a manifest file.

    Raises:
        ManifestError: On invalid JSON or a malformed packs array.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid manifest {path}: {e}")

    if not isinstance(data, dict):
        raise ManifestError(f"Invalid manifest {path}: expected a JSON object")

    packs = data.get("packs", [])
    if not isinstance(packs, list):
        raise ManifestError(f"Invalid manifest {path}: 'packs' must be an array")

    try:
        pack_infos = [PackInfo.from_dict(p) for p in packs]
    except (KeyError, TypeError, AttributeError):
        raise ManifestError(f"Invalid manifest {path}: every pack needs a name")

    return PackageManifest(id=data.get("id", ""), path=str(path), packs=pack_infos)
