"""Shared pytest fixtures for the stage player test suite.

Everything runs on a ManualScheduler so timing is deterministic.
"""

import pytest

from stage_player.audio import simulated_audio_factory
from stage_player.clock import ManualScheduler
from stage_player.config import PlayerSettings
from stage_player.player import WebPlayer

BUFFER_MS = 200
FADE_IN_MS = 500
BLANK_MS = 3000


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def audio_factory(scheduler):
    return simulated_audio_factory(scheduler)


@pytest.fixture()
def settings() -> PlayerSettings:
    return PlayerSettings(
        crossfade_buffer_ms=BUFFER_MS,
        speech_fade_in_ms=FADE_IN_MS,
        blank_exit_offset_ms=BLANK_MS,
        base_image_path="https://img.test/actors",
        bg_volume_pct=25,
        dimension_debounce_ms=100,
    )


@pytest.fixture()
def player(scheduler, settings, audio_factory) -> WebPlayer:
    return WebPlayer(scheduler, settings=settings, audio_factory=audio_factory)


@pytest.fixture()
def two_image_config() -> dict:
    """Two image actors, two speech tracks and background music."""
    return {
        "name": "Two Images",
        "leader": True,
        "actorMap": {
            "0": {"code": "first", "enterStage": 0, "exitStage": 1000},
            "1": {"code": "second", "enterStage": 1000, "exitStage": 1800},
        },
        "audioMap": {
            "0": {"fileName": "speech/a.mp3", "enterStage": 0, "exitStage": 1000},
            "1": {"fileName": "speech/b.mp3", "enterStage": 1000, "exitStage": 1800},
        },
        "backgroundMusic": {"fileName": "music/bg.mp3"},
    }
