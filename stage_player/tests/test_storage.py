"""
Tests for presentation storage.

Run with: python -m pytest stage_player/tests/test_storage.py -v
"""

import json

import pytest

from stage_player.registry import build_registry
from stage_player.storage import PresentationStorage, create_demo_presentation


@pytest.fixture()
def storage(tmp_path):
    return PresentationStorage(str(tmp_path / "presentations"))


class TestPresentationStorage:
    """Save, load and list presentation documents."""

    def test_creates_directory(self, tmp_path):
        target = tmp_path / "nested" / "dir"
        PresentationStorage(str(target))
        assert target.is_dir()

    def test_save_and_load_roundtrip(self, storage, two_image_config):
        path = storage.save("Two Images", two_image_config)

        assert path.endswith("Two_Images.json")
        assert storage.load("two") == two_image_config

    def test_save_sanitises_name(self, storage):
        path = storage.save("../escape attempt!", {"name": "x"})
        assert "/../" not in path
        assert path.endswith("___escape_attempt_.json")

    def test_load_unknown_returns_none(self, storage, caplog):
        assert storage.load("nothing") is None
        assert "not found" in caplog.text

    def test_load_file_rejects_bad_json(self, tmp_path, storage):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        assert storage.load_file(str(bad)) is None

    def test_load_file_rejects_non_object(self, tmp_path, storage):
        listing = tmp_path / "list.json"
        listing.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        assert storage.load_file(str(listing)) is None

    def test_load_file_missing(self, tmp_path, storage):
        assert storage.load_file(str(tmp_path / "absent.json")) is None

    def test_list_presentations(self, storage, two_image_config):
        storage.save("zeta", {"name": "Zeta", "actorMap": [{"code": "a", "enterStage": 0, "exitStage": 1}]})
        storage.save("two", two_image_config)
        (storage.storage_dir / "broken.json").write_text("oops", encoding="utf-8")

        listed = storage.list_presentations()

        assert [p["name"] for p in listed] == ["Two Images", "Zeta"]
        assert listed[0]["actors"] == 2
        assert listed[0]["speech"] == 2
        assert listed[1]["actors"] == 1
        assert listed[1]["speech"] == 0


class TestDemoPresentation:

    def test_demo_builds_cleanly(self):
        result = build_registry(create_demo_presentation())

        assert result.ok
        registry = result.value
        assert registry.skipped == 0
        assert len(registry.actors) == 5
        assert len(registry.audio) == 2
        assert registry.bg_volume_pct == 30
