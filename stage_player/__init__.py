"""
Stage Player
Timed presentation sequencer: cross-fading visual actors, speech tracks
and a looping background, driven by one clock.
"""

from .clock import AsyncioScheduler, Debouncer, ManualScheduler, Scheduler
from .errors import (
    AudioHandleUnavailable,
    ConfigInvalid,
    ConfigMissing,
    Err,
    InvalidActorPayload,
    Ok,
    PlayerError,
)
from .models import BackgroundEntity, EntityKind, SpeechEntity, TimelineEntity
from .player import PlaybackSnapshot, WebPlayer
from .registry import ActorRegistry, build_registry
from .sequencer import PlayerState, Sequencer

__all__ = [
    'ActorRegistry',
    'AsyncioScheduler',
    'AudioHandleUnavailable',
    'BackgroundEntity',
    'ConfigInvalid',
    'ConfigMissing',
    'Debouncer',
    'EntityKind',
    'Err',
    'InvalidActorPayload',
    'ManualScheduler',
    'Ok',
    'PlaybackSnapshot',
    'PlayerError',
    'PlayerState',
    'Scheduler',
    'Sequencer',
    'SpeechEntity',
    'TimelineEntity',
    'WebPlayer',
    'build_registry',
]
