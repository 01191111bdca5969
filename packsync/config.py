"""
packsync Project Configuration.

Per-project settings stored in .packsync/config.json.

Layout defaults match a module or system checkout:
- src/<pack>/...   source JSON files (version controlled)
- packs/<pack>     compiled packs (build artifacts)
- module.json or system.json   package manifest
"""

import json
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional


# Written into _stats.lastModifiedBy. Projects should set a real 16 character
# user id here.
DEFAULT_LAST_MODIFIED_BY = "<REPLACE_ME>"

DEFAULT_FILE_MODE = 0o664

# Environment override for the project root (default: cwd)
PROJECT_ENV_VAR = "PACKSYNC_PROJECT"


@dataclass
class ProjectConfig:
    """Project-level configuration."""
    # Folder holding source JSON files, relative to the project root
    pack_src: str = "src"
    # Folder holding compiled packs, relative to the project root
    pack_dest: str = "packs"
    # Manifest path; None means auto-detect module.json / system.json
    manifest: Optional[str] = None
    last_modified_by: str = DEFAULT_LAST_MODIFIED_BY
    file_mode: int = DEFAULT_FILE_MODE

    # Resolved at load time, never persisted
    root: str = "."

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("root")
        return data

    @classmethod
    def from_dict(cls, data: dict, root: str = ".") -> "ProjectConfig":
        file_mode = data.get("file_mode", DEFAULT_FILE_MODE)
        if isinstance(file_mode, str):
            file_mode = int(file_mode, 8)
        return cls(
            pack_src=data.get("pack_src", "src"),
            pack_dest=data.get("pack_dest", "packs"),
            manifest=data.get("manifest"),
            last_modified_by=data.get("last_modified_by", DEFAULT_LAST_MODIFIED_BY),
            file_mode=file_mode,
            root=root,
        )

    @property
    def src_path(self) -> Path:
        """Absolute source tree root."""
        return Path(self.root) / self.pack_src

    @property
    def dest_path(self) -> Path:
        """Absolute compiled pack root."""
        return Path(self.root) / self.pack_dest


def get_project_root(project_path: Optional[str] = None) -> str:
    """Resolve the project root, respecting PACKSYNC_PROJECT."""
    return project_path or os.environ.get(PROJECT_ENV_VAR) or os.getcwd()


def get_config_path(project_path: str) -> Path:
    """Get the config file path for a project."""
    return Path(project_path) / ".packsync" / "config.json"


def load_config(project_path: Optional[str] = None) -> ProjectConfig:
    """Load project configuration. Returns defaults if not found."""
    root = get_project_root(project_path)
    config_file = get_config_path(root)

    if not config_file.exists():
        return ProjectConfig(root=root)

    try:
        with open(config_file, encoding="utf-8") as f:
            data = json.load(f)
        return ProjectConfig.from_dict(data, root=root)
    except (json.JSONDecodeError, KeyError, ValueError, AttributeError):
        return ProjectConfig(root=root)


def save_config(project_path: str, config: ProjectConfig) -> None:
    """Save project configuration."""
    config_file = get_config_path(project_path)

    # Ensure .packsync directory exists
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
