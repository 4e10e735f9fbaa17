"""Tests for preset storage."""

import logging

import pytest

from automate.errors import PresetNotFoundError, SchemaValidationError
from automate.presets import PresetStorage, preset_file_name

from tests.conftest import make_preset, make_step


def _document(name: str, **fields):
    return {"name": name, "steps": [make_step("a", "log", params={"message": "hi"})], **fields}


class TestPresetFileName:
    @pytest.mark.parametrize(
        "name,file_name",
        [
            ("backup", "backup.json"),
            ("Nightly Backup", "nightly-backup.json"),
            ("  Deploy: prod!  ", "deploy-prod.json"),
        ],
    )
    def test_slug(self, name, file_name):
        assert preset_file_name(name) == file_name

    def test_unusable_name(self):
        with pytest.raises(ValueError):
            preset_file_name("!!!")


class TestLoadPreset:
    def test_load_by_name(self, storage, write_preset):
        write_preset(_document("backup", description="Copy files"))

        preset = storage.load_preset("backup")

        assert preset.name == "backup"
        assert preset.description == "Copy files"

    def test_load_by_path(self, storage, tmp_path):
        path = tmp_path / "elsewhere.json"
        path.write_text('{"name": "elsewhere", "steps": [{"id": "a", "name": "A", "action": "log"}]}')

        preset = storage.load_preset(str(path))

        assert preset.name == "elsewhere"

    def test_not_found_lists_searched_paths(self, storage):
        with pytest.raises(PresetNotFoundError) as exc_info:
            storage.load_preset("missing")

        assert exc_info.value.name == "missing"
        assert any(p.endswith("missing.json") for p in exc_info.value.searched)

    def test_invalid_json(self, storage, write_preset):
        write_preset("{not json", file_name="broken.json")

        with pytest.raises(SchemaValidationError) as exc_info:
            storage.load_preset("broken")

        assert "invalid JSON" in exc_info.value.errors[0]

    def test_non_utf8_file(self, storage, presets_dir):
        (presets_dir / "bad.json").write_bytes(b'{"name": "\xff\xfe"}')

        with pytest.raises(SchemaValidationError) as exc_info:
            storage.load_preset("bad")

        assert "not valid UTF-8" in exc_info.value.errors[0]

    def test_graph_errors_fail(self, storage, write_preset):
        write_preset({"name": "dup", "steps": [make_step("a", "log"), make_step("a", "log")]})

        with pytest.raises(SchemaValidationError) as exc_info:
            storage.load_preset("dup")

        assert "duplicate" in exc_info.value.errors[0]
        assert exc_info.value.source.endswith("dup.json")


class TestListPresets:
    def test_missing_directory(self, tmp_path):
        assert PresetStorage(tmp_path / "nope").list_presets() == []

    def test_lists_sorted_summaries(self, storage, write_preset):
        write_preset(_document("zeta"))
        write_preset(_document("alpha", description="First"))

        summaries = storage.list_presets()

        assert [s.name for s in summaries] == ["alpha", "zeta"]
        assert summaries[0].description == "First"
        assert summaries[0].file_name == "alpha.json"
        assert summaries[0].step_count == 1

    def test_skips_broken_files(self, storage, write_preset, caplog):
        write_preset(_document("good"))
        write_preset("{broken", file_name="bad.json")
        write_preset({"name": "no-steps", "steps": []})

        with caplog.at_level(logging.WARNING):
            summaries = storage.list_presets()

        assert [s.name for s in summaries] == ["good"]
        assert sum(1 for r in caplog.records if r.message == "preset_skipped") == 2

    def test_does_not_check_graph(self, storage, write_preset):
        write_preset({"name": "dup", "steps": [make_step("a", "log"), make_step("a", "log")]})

        assert [s.name for s in storage.list_presets()] == ["dup"]

    def test_skips_non_utf8_file(self, storage, presets_dir, write_preset):
        write_preset(_document("ok"))
        (presets_dir / "bad.json").write_bytes(b'{"name": "\xff\xfe"}')

        assert [s.name for s in storage.list_presets()] == ["ok"]


class TestSavePreset:
    def test_round_trip_through_file(self, tmp_path):
        storage = PresetStorage(tmp_path / "created")
        preset = make_preset(
            [make_step("check", "if", condition="x", then="check", **{"else": "check"})],
            name="My Preset",
        )

        path = storage.save_preset(preset)

        assert path.name == "my-preset.json"
        assert storage.load_preset("my-preset") == preset
