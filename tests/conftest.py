"""
Shared fixtures: a small project with a manifest and a source tree.
"""

import json
from pathlib import Path

import pytest

from packsync.config import ProjectConfig


def write_json(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path):
    """Project root with module.json declaring 'spells' and 'gear'."""
    write_json(tmp_path / "module.json", {
        "id": "test-module",
        "packs": [
            {"name": "spells", "label": "Spells", "type": "Item"},
            {"name": "gear", "label": "Gear", "type": "Item"},
        ],
    })
    return tmp_path


@pytest.fixture
def config(project):
    return ProjectConfig(root=str(project))


@pytest.fixture
def spells_src(project):
    """Source tree for 'spells': one folder chain and two items."""
    src = project / "src" / "spells"
    write_json(src / "evocation" / "_folder.json", {
        "_id": "fold00000000001",
        "_key": "!folders!fold00000000001",
        "name": "Evocation",
        "type": "Item",
        "folder": None,
        "sort": 100,
        "flags": {},
    })
    write_json(src / "evocation" / "fireball-item00000000001.json", {
        "_id": "item00000000001",
        "_key": "!items!item00000000001",
        "name": "Fireball",
        "type": "spell",
        "folder": "fold00000000001",
        "sort": 300000,
        "ownership": {"default": 2, "abcdefgh12345678": 3},
        "flags": {"core": {"sourceId": "Compendium.x.y"}, "exportSource": {"world": "w"}},
        "effects": [
            {"_id": "effe00000000001", "name": "Burning", "flags": {}, "ownership": {"default": 3}},
        ],
        "_stats": {"lastModifiedBy": "someUser00000001", "exportSource": {"world": "w"}},
    })
    write_json(src / "magic-missile-item00000000002.json", {
        "_id": "item00000000002",
        "_key": "!items!item00000000002",
        "name": "Magic Missile",
        "type": "spell",
        "folder": None,
        "sort": 0,
        "flags": {},
    })
    return src
