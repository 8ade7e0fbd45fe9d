"""
Unit tests for building the actor registry from configuration documents.

Run with: python -m pytest stage_player/tests/test_registry.py -v
"""

import logging

import pytest

from stage_player.errors import ConfigInvalid, ConfigMissing, InvalidActorPayload
from stage_player.models import EntityKind, TimelineEntity
from stage_player.registry import build_registry, image_src, resolve_base_path, resolve_volume_pct
from stage_player.schemas import ordered_entries


def _build(config, **kwargs):
    kwargs.setdefault("blank_exit_offset_ms", 3000)
    return build_registry(config, **kwargs)


# ===========================================================================
# Actors
# ===========================================================================


class TestActors:
    """Visual actors are built in order with a trailing blank."""

    def test_builds_images_videos_and_blank(self, two_image_config):
        two_image_config["actorMap"]["2"] = {"src": "clips/outro.mp4", "enterStage": 0, "exitStage": 500}
        result = _build(two_image_config, base_image_path="https://cdn.test/img")

        assert result.ok
        actors = result.value.actors
        assert [a.kind for a in actors] == [EntityKind.IMAGE, EntityKind.IMAGE, EntityKind.VIDEO, EntityKind.BLANK]
        assert [a.id for a in actors] == [0, 1, 2, 3]
        assert actors[0].resource_ref == "https://cdn.test/img/first.jpg"
        assert actors[0].code == "first"
        assert actors[2].resource_ref == "clips/outro.mp4"
        assert actors[3].duration_ms == 3000

    def test_numeric_keys_sorted_numerically(self):
        config = {"actorMap": {
            "10": {"code": "ten", "enterStage": 0, "exitStage": 10},
            "2": {"code": "two", "enterStage": 0, "exitStage": 10},
            "1": {"code": "one", "enterStage": 0, "exitStage": 10},
        }}
        actors = _build(config).value.actors
        assert [a.code for a in actors[:-1]] == ["one", "two", "ten"]

    def test_list_map_keeps_order(self):
        config = {"actorMap": [
            {"code": "b", "enterStage": 0, "exitStage": 10},
            {"code": "a", "enterStage": 0, "exitStage": 10},
        ]}
        actors = _build(config).value.actors
        assert [a.code for a in actors[:-1]] == ["b", "a"]

    @pytest.mark.parametrize("entry", [
        {"enterStage": 0, "exitStage": 10},
        {"code": "x", "enterStage": 10, "exitStage": 10},
        {"code": "x", "enterStage": -1, "exitStage": 10},
        {"src": "", "enterStage": 0, "exitStage": 10},
        "not-an-object",
    ])
    def test_malformed_actor_is_skipped(self, entry, caplog):
        config = {"actorMap": [
            {"code": "good", "enterStage": 0, "exitStage": 10},
            entry,
            {"code": "also-good", "enterStage": 0, "exitStage": 10},
        ]}
        with caplog.at_level(logging.WARNING, logger="registry"):
            registry = _build(config).value

        assert registry.skipped == 1
        assert [a.code for a in registry.actors[:-1]] == ["good", "also-good"]
        assert [a.id for a in registry.actors] == [0, 1, 2]
        assert "Skipping actor entry" in caplog.text

    def test_empty_actor_map_still_has_blank(self):
        registry = _build({"name": "Empty", "actorMap": {}}).value
        assert len(registry.actors) == 1
        assert registry.actors[0].kind is EntityKind.BLANK
        assert registry.last_actor_index == 0


# ===========================================================================
# Speech and background
# ===========================================================================


class TestAudio:
    """Speech tracks fade in; background music loops at the configured volume."""

    def test_speech_tracks_get_fade(self, two_image_config, audio_factory):
        registry = _build(two_image_config, audio_factory=audio_factory, speech_fade_in_ms=750).value

        assert [s.resource_ref for s in registry.audio] == ["speech/a.mp3", "speech/b.mp3"]
        assert all(s.fade.duration_ms == 750 for s in registry.audio)
        assert all(s.track.available for s in registry.audio)

    def test_background_loops_at_fractional_volume(self, two_image_config, audio_factory):
        registry = _build(two_image_config, audio_factory=audio_factory, bg_volume_pct=40).value

        bg = registry.bg_music
        assert bg.resource_ref == "music/bg.mp3"
        assert bg.volume == pytest.approx(0.4)
        assert bg.track.handle.loop is True
        assert bg.track.handle.volume == pytest.approx(0.4)
        assert bg.track.fade_spec is None

    def test_missing_background_is_allowed(self, two_image_config, caplog):
        del two_image_config["backgroundMusic"]
        with caplog.at_level(logging.WARNING, logger="registry"):
            registry = _build(two_image_config).value

        assert registry.bg_music is None
        assert "No background music" in caplog.text

    def test_without_factory_tracks_are_unavailable(self, two_image_config):
        registry = _build(two_image_config).value
        assert not any(s.track.available for s in registry.audio)
        assert not registry.bg_music.track.available

    def test_factory_failure_leaves_track_unavailable(self, two_image_config, caplog):
        def broken_factory(src, *, volume=1.0, loop=False):
            raise OSError(f"cannot open {src}")

        with caplog.at_level(logging.ERROR, logger="registry"):
            registry = _build(two_image_config, audio_factory=broken_factory).value

        assert len(registry.audio) == 2
        assert not registry.audio[0].track.available
        assert "cannot open speech/a.mp3" in caplog.text

    def test_unload_releases_handles(self, two_image_config, audio_factory):
        registry = _build(two_image_config, audio_factory=audio_factory).value
        registry.unload()

        assert all(s.track.handle.unloaded for s in registry.audio)
        assert registry.bg_music.track.handle.unloaded


# ===========================================================================
# Overrides and errors
# ===========================================================================


class TestOverrides:
    """Document overrides win over the caller's values when they are valid."""

    def test_overrides_take_priority(self, two_image_config):
        two_image_config["overrides"] = {"actorImageBasePath": "/img/custom/", "bgVolumeLevel": 60}
        registry = _build(two_image_config, base_image_path="/ignored", bg_volume_pct=10).value

        assert registry.base_image_path == "/img/custom"
        assert registry.bg_volume_pct == 60
        assert registry.actors[0].resource_ref == "/img/custom/first.jpg"

    @pytest.mark.parametrize("level", [150, -1, "loud", True, float("nan")])
    def test_invalid_volume_override_falls_back(self, two_image_config, level, caplog):
        two_image_config["overrides"] = {"bgVolumeLevel": level}
        with caplog.at_level(logging.WARNING, logger="registry"):
            registry = _build(two_image_config, bg_volume_pct=25).value

        assert registry.bg_volume_pct == 25
        assert "Ignoring bgVolumeLevel override" in caplog.text

    def test_name_and_leader_copied(self, two_image_config):
        registry = _build(two_image_config).value
        assert registry.name == "Two Images"
        assert registry.leader is True


class TestErrors:
    """Unusable documents become Err values, never exceptions."""

    def test_missing_config(self):
        result = _build(None)
        assert not result.ok
        assert isinstance(result.error, ConfigMissing)

    def test_empty_config_builds_blank_only_registry(self):
        result = _build({})

        assert result.ok
        assert [a.kind for a in result.value.actors] == [EntityKind.BLANK]
        assert result.value.audio == []
        assert result.value.bg_music is None

    def test_non_mapping_config(self):
        result = _build(["not", "a", "mapping"])
        assert isinstance(result.error, ConfigInvalid)

    def test_structurally_invalid_config(self):
        result = _build({"actorMap": "nope"})
        assert not result.ok
        assert isinstance(result.error, ConfigInvalid)
        assert "actorMap" in str(result.error) or "actor_map" in str(result.error)


# ===========================================================================
# Helpers
# ===========================================================================


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        (0, 0.0), (100, 100.0), (33.5, 33.5), (101, 25), (None, 25), ("50", 25), (False, 25),
    ])
    def test_resolve_volume_pct(self, value, expected):
        assert resolve_volume_pct(value, 25) == expected

    @pytest.mark.parametrize("value,expected", [
        ("/a/b/", "/a/b"), ("  /a  ", "/a"), ("", "/default"), ("///", "/default"), (None, "/default"),
    ])
    def test_resolve_base_path(self, value, expected):
        assert resolve_base_path(value, "/default") == expected

    def test_image_src(self):
        assert image_src("/static/actors", "abc") == "/static/actors/abc.jpg"

    def test_ordered_entries_puts_digits_first(self):
        entries = {"intro": "i", "2": "b", "1": "a", "outro": "o"}
        assert ordered_entries(entries) == ["a", "b", "i", "o"]

    def test_timeline_entity_rejects_bad_offsets(self):
        with pytest.raises(InvalidActorPayload):
            TimelineEntity(id=0, kind=EntityKind.IMAGE, enter_offset_ms=500, exit_offset_ms=100)
