"""
Unit tests for AudioTrack and the simulated audio handle.

Run with: python -m pytest stage_player/tests/test_audio.py -v
"""

import logging
from unittest.mock import MagicMock

from stage_player.audio import AudioTrack, FadeSpec, SimulatedAudioHandle, simulated_audio_factory

# ===========================================================================
# SimulatedAudioHandle
# ===========================================================================


class TestSimulatedAudioHandle:
    """Positions advance with the scheduler while a sound is playing."""

    def test_play_issues_new_sound_id(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        first = handle.play()
        second = handle.play()

        assert first != second
        assert handle.playing(first) and handle.playing(second)

    def test_pause_keeps_position_and_resume_continues(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        sound = handle.play()
        scheduler.advance(300)
        handle.pause(sound)

        scheduler.advance(1000)
        assert handle.seek(sound) == 300
        assert not handle.playing(sound)

        assert handle.play(sound) == sound
        scheduler.advance(200)
        assert handle.seek(sound) == 500

    def test_stop_rewinds(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        sound = handle.play()
        scheduler.advance(300)
        handle.stop(sound)

        assert handle.seek(sound) == 0
        assert not handle.playing(sound)

    def test_sound_ends_naturally(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3", duration_ms=1000)
        sound = handle.play()

        scheduler.advance(999)
        assert handle.playing(sound)
        scheduler.advance(1)
        assert not handle.playing(sound)

        # playing an ended sound starts it over
        handle.play(sound)
        assert handle.seek(sound) == 0
        assert handle.playing(sound)

    def test_looping_sound_never_ends(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "bg.mp3", duration_ms=1000, loop=True)
        sound = handle.play()
        scheduler.advance(2500)

        assert handle.playing(sound)
        assert handle.seek(sound) == 500

    def test_fade_is_recorded(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3", volume=0.5)
        handle.fade(0.0, 1.0, 750, 42)

        assert handle.fades == [(0.0, 1.0, 750, 42)]
        assert handle.volume == 1.0

    def test_unloaded_handle_refuses_to_play(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        handle.play()
        handle.unload()

        assert handle.unloaded
        assert not handle.playing()
        track = AudioTrack("a.mp3", handle)
        assert track.play() is False

    def test_factory_applies_durations(self, scheduler):
        factory = simulated_audio_factory(scheduler, {"a.mp3": 1200})
        handle = factory("a.mp3", volume=0.25, loop=True)

        assert handle.duration_ms == 1200
        assert handle.volume == 0.25
        assert handle.loop is True
        assert factory("b.mp3").duration_ms is None


# ===========================================================================
# AudioTrack
# ===========================================================================


class TestAudioTrack:
    """Track-level play/pause/stop with a one-shot fade-in."""

    def test_fade_applied_once(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        track = AudioTrack("a.mp3", handle, FadeSpec(0.0, 1.0, 500))

        track.play()
        track.pause()
        track.play()

        assert len(handle.fades) == 1
        assert handle.fades[0] == (0.0, 1.0, 500, track.sound_id)

    def test_fade_rearmed_after_stop(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        track = AudioTrack("a.mp3", handle, FadeSpec())

        track.play()
        track.stop()
        assert not track.started
        assert not track.already_faded

        track.play()
        assert len(handle.fades) == 2

    def test_no_fade_without_spec(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "bg.mp3", loop=True)
        track = AudioTrack("bg.mp3", handle)
        track.play()
        assert handle.fades == []

    def test_resume_reuses_sound_id(self, scheduler):
        track = AudioTrack("a.mp3", SimulatedAudioHandle(scheduler, "a.mp3"))
        track.play()
        sound_id = track.sound_id
        track.pause()
        track.play()

        assert track.sound_id == sound_id
        assert track.is_playing()

    def test_pause_before_play_is_noop(self, scheduler):
        handle = MagicMock()
        track = AudioTrack("a.mp3", handle)

        assert track.pause() is False
        handle.pause.assert_not_called()

    def test_missing_handle_logs_and_skips(self, caplog):
        track = AudioTrack("missing.mp3")
        with caplog.at_level(logging.WARNING, logger="audio"):
            assert track.play() is False

        assert not track.available
        assert not track.is_playing()
        assert "missing.mp3" in caplog.text

    def test_handle_errors_are_contained(self, caplog):
        handle = MagicMock()
        handle.play.side_effect = RuntimeError("device lost")
        handle.playing.side_effect = RuntimeError("device lost")
        track = AudioTrack("a.mp3", handle)

        with caplog.at_level(logging.ERROR, logger="audio"):
            assert track.play() is False
            assert track.is_playing() is False

        assert "device lost" in caplog.text

    def test_unload_forgets_sound(self, scheduler):
        handle = SimulatedAudioHandle(scheduler, "a.mp3")
        track = AudioTrack("a.mp3", handle)
        track.play()
        track.unload()

        assert handle.unloaded
        assert track.sound_id is None

    def test_to_dict(self):
        track = AudioTrack("a.mp3", None, FadeSpec(0.0, 1.0, 500))
        assert track.to_dict() == {
            "src": "a.mp3",
            "sound_id": None,
            "available": False,
            "fade": {"from_volume": 0.0, "to_volume": 1.0, "duration_ms": 500},
        }
