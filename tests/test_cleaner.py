"""
Tests for entry cleaning.

Covers:
- clean_pack_entry field rules (ownership, flags, sort, _stats, name)
- Recursion into embedded collections
- Idempotence
- In-place cleaning of source folders (filters, malformed files)
"""

import copy
import json
import logging
import os
import stat

import pytest

from packsync.cleaner import clean_pack, clean_pack_entry, clean_packs, name_matches
from packsync.config import DEFAULT_LAST_MODIFIED_BY


def sample_entry():
    return {
        "_id": "item00000000001",
        "_key": "!items!item00000000001",
        "name": "O\u2019Brien\u2060s \u201cAxe\u201d",
        "sort": 500,
        "ownership": {"default": 3, "user1": 2},
        "flags": {
            "core": {"sourceId": "Compendium.a.b", "sheetClass": "x"},
            "importSource": {"a": 1},
            "exportSource": {"b": 2},
            "empty": {},
            "mymodule": {"keep": True},
        },
        "_stats": {"lastModifiedBy": "abcdefgh12345678", "exportSource": {"world": "w"}, "coreVersion": "12"},
        "effects": [{"_id": "e1", "ownership": {"default": 3}, "sort": 5, "flags": {"core": {"sourceId": "z"}}}],
        "pages": [{"_id": "p1", "ownership": {"default": 3}, "name": "\u2018Intro\u2019"}],
    }


class TestCleanPackEntry:
    """Test clean_pack_entry()."""

    def test_ownership_reset(self):
        entry = clean_pack_entry({"ownership": {"default": 3, "user1": 2}})
        assert entry["ownership"] == {"default": 0}

    def test_ownership_custom_reset(self):
        entry = clean_pack_entry({"ownership": {"default": 3}}, ownership=2)
        assert entry["ownership"] == {"default": 2}

    def test_ownership_absent_not_added(self):
        entry = clean_pack_entry({"name": "x"})
        assert "ownership" not in entry

    @pytest.mark.parametrize("ownership", [0, "", False, None])
    def test_falsy_ownership_left_alone(self, ownership):
        entry = clean_pack_entry({"ownership": ownership})
        assert entry["ownership"] == ownership

    def test_empty_ownership_map_reset(self):
        entry = clean_pack_entry({"ownership": {}})
        assert entry["ownership"] == {"default": 0}

    def test_flag_pruning(self):
        entry = clean_pack_entry({"flags": {"core": {"sourceId": "x"}, "other": {}}})
        assert entry["flags"] == {}

    def test_provenance_flags_removed(self):
        entry = clean_pack_entry(sample_entry())
        assert entry["flags"] == {"core": {"sheetClass": "x"}, "mymodule": {"keep": True}}

    def test_missing_flags_created(self):
        entry = clean_pack_entry({"_id": "a"})
        assert entry["flags"] == {}

    def test_non_empty_scalar_flags_kept(self):
        entry = clean_pack_entry({"flags": {"count": 0, "label": ""}})
        assert entry["flags"] == {"count": 0, "label": ""}

    @pytest.mark.parametrize("sort,expected", [
        (500, 0),
        (-20, 0),
        ("1200", 0),
        ("12abc", 0),
        (0, 0),
        ("abc", "abc"),
        (None, None),
    ])
    def test_sort_reset(self, sort, expected):
        entry = clean_pack_entry({"sort": sort})
        assert entry["sort"] == expected

    def test_name_normalized(self):
        entry = clean_pack_entry(sample_entry())
        assert entry["name"] == "O'Briens \"Axe\""

    def test_stats_placeholder(self):
        entry = clean_pack_entry(sample_entry())
        assert entry["_stats"] == {
            "lastModifiedBy": DEFAULT_LAST_MODIFIED_BY,
            "exportSource": None,
            "coreVersion": "12",
        }

    def test_stats_custom_placeholder(self):
        entry = clean_pack_entry({"_stats": {}}, last_modified_by="user000000000001")
        assert entry["_stats"]["lastModifiedBy"] == "user000000000001"

    def test_pages_reset_to_minus_one(self):
        entry = clean_pack_entry(sample_entry())
        assert entry["pages"][0]["ownership"] == {"default": -1}
        assert entry["pages"][0]["name"] == "'Intro'"

    def test_embedded_collections_cleaned(self):
        entry = clean_pack_entry(sample_entry())
        effect = entry["effects"][0]
        assert effect["ownership"] == {"default": 0}
        assert effect["sort"] == 0
        assert effect["flags"] == {}

    def test_nested_items_effects(self):
        actor = {
            "items": [{"_id": "i1", "sort": 3, "effects": [{"_id": "e1", "ownership": {"default": 1}}]}],
        }
        clean_pack_entry(actor)
        assert actor["items"][0]["sort"] == 0
        assert actor["items"][0]["effects"][0]["ownership"] == {"default": 0}

    def test_malformed_collections_ignored(self):
        entry = clean_pack_entry({"items": "not a list", "effects": [None, 3]})
        assert entry["items"] == "not a list"
        assert entry["effects"] == [None, 3]

    def test_idempotent(self):
        once = clean_pack_entry(sample_entry())
        twice = clean_pack_entry(copy.deepcopy(once))
        assert once == twice

    def test_mutates_in_place(self):
        entry = sample_entry()
        result = clean_pack_entry(entry)
        assert result is entry


class TestNameMatches:
    """Test name_matches()."""

    def test_no_filter(self):
        assert name_matches({"name": "Anything"}, None)

    def test_case_insensitive(self):
        assert name_matches({"name": "Fireball"}, "FIREBALL")

    def test_exact_only(self):
        assert not name_matches({"name": "Fireball Greater"}, "fireball")

    def test_missing_name(self):
        assert not name_matches({}, "fireball")


class TestCleanPack:
    """Test in-place cleaning of a source folder."""

    def test_cleans_all_files(self, spells_src):
        result = clean_pack(str(spells_src), pack="spells")
        assert len(result.cleaned) == 3
        assert result.errors == []

        fireball = spells_src / "evocation" / "fireball-item00000000001.json"
        data = json.loads(fireball.read_text(encoding="utf-8"))
        assert data["ownership"] == {"default": 0}
        assert data["sort"] == 0
        assert data["flags"] == {}
        assert data["_stats"]["exportSource"] is None

    def test_stable_formatting(self, spells_src):
        clean_pack(str(spells_src))
        text = (spells_src / "evocation" / "_folder.json").read_text(encoding="utf-8")
        assert text.endswith("}\n")
        assert '\n  "_id": "fold00000000001",' in text

    def test_file_mode(self, spells_src):
        old_umask = os.umask(0)
        try:
            clean_pack(str(spells_src), file_mode=0o664)
        finally:
            os.umask(old_umask)
        mode = stat.S_IMODE(os.stat(spells_src / "magic-missile-item00000000002.json").st_mode)
        assert mode == 0o664

    def test_second_run_no_change(self, spells_src):
        clean_pack(str(spells_src))
        path = spells_src / "evocation" / "fireball-item00000000001.json"
        before = path.read_text(encoding="utf-8")
        clean_pack(str(spells_src))
        assert path.read_text(encoding="utf-8") == before

    def test_entry_filter(self, spells_src):
        missile = spells_src / "magic-missile-item00000000002.json"
        before = missile.read_text(encoding="utf-8")

        result = clean_pack(str(spells_src), entry_name="fireball")

        assert [os.path.basename(p) for p in result.cleaned] == ["fireball-item00000000001.json"]
        assert len(result.skipped) == 2
        assert missile.read_text(encoding="utf-8") == before

    def test_missing_id_reported_and_untouched(self, spells_src):
        bad = spells_src / "broken.json"
        bad.write_text('{"_key": "!items!x", "name": "Broken", "sort": 7}', encoding="utf-8")

        result = clean_pack(str(spells_src))

        assert len(result.errors) == 1
        assert result.errors[0].path == str(bad)
        assert "_id" in result.errors[0].reason
        assert bad.read_text(encoding="utf-8") == '{"_key": "!items!x", "name": "Broken", "sort": 7}'

    def test_invalid_json_reported(self, spells_src):
        bad = spells_src / "broken.json"
        bad.write_text("{not json", encoding="utf-8")

        result = clean_pack(str(spells_src))

        assert len(result.errors) == 1
        assert "invalid JSON" in result.errors[0].reason
        assert len(result.cleaned) == 3

    def test_non_utf8_reported(self, spells_src):
        bad = spells_src / "latin1.json"
        raw = b'{"_id":"x","_key":"!items!x","name":"Caf\xe9"}'
        bad.write_bytes(raw)

        result = clean_pack(str(spells_src))

        assert len(result.errors) == 1
        assert result.errors[0].path == str(bad)
        assert "UTF-8" in result.errors[0].reason
        assert len(result.cleaned) == 3
        assert bad.read_bytes() == raw

    def test_malformed_entry_not_logged_as_warning(self, spells_src, caplog):
        (spells_src / "broken.json").write_text("{not json", encoding="utf-8")
        caplog.set_level(logging.DEBUG, logger="packsync")

        clean_pack(str(spells_src))

        assert any("broken.json" in r.getMessage() for r in caplog.records)
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_non_json_files_ignored(self, spells_src):
        (spells_src / "README.md").write_text("notes", encoding="utf-8")
        result = clean_pack(str(spells_src))
        assert len(result.cleaned) == 3


class TestCleanPacks:
    """Test clean_packs() over the source root."""

    def test_all_packs(self, config, spells_src, project):
        gear = project / "src" / "gear"
        gear.mkdir(parents=True)
        (gear / "rope-item00000000009.json").write_text(
            json.dumps({"_id": "item00000000009", "_key": "!items!item00000000009", "name": "Rope"}),
            encoding="utf-8",
        )
        results = {r.pack: r for r in clean_packs(config)}
        assert set(results) == {"spells", "gear"}
        assert len(results["gear"].cleaned) == 1

    def test_single_pack(self, config, spells_src, project):
        (project / "src" / "gear").mkdir()
        results = list(clean_packs(config, "spells"))
        assert [r.pack for r in results] == ["spells"]

    def test_spells_fireball_filter(self, config, spells_src):
        results = list(clean_packs(config, "spells", "Fireball"))
        assert len(results) == 1
        assert [os.path.basename(p) for p in results[0].cleaned] == ["fireball-item00000000001.json"]

    def test_missing_source_root(self, config):
        with pytest.raises(FileNotFoundError):
            list(clean_packs(config))

    def test_on_start_called_before_each_pack(self, config, spells_src):
        events = []
        for result in clean_packs(config, on_start=lambda name: events.append(("start", name))):
            events.append(("done", result.pack))
        assert events == [("start", "spells"), ("done", "spells")]
