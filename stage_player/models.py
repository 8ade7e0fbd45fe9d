"""
Data models for the stage player timeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .audio import AudioTrack, FadeSpec
from .config import BLANK_EXIT_OFFSET_MS
from .errors import InvalidActorPayload


class EntityKind(Enum):
    IMAGE = "image"
    VIDEO = "video"
    BLANK = "blank"     # empty stage, lets the last actor fade out


def _check_offsets(what: str, enter_offset_ms: int, exit_offset_ms: int):
    if exit_offset_ms <= enter_offset_ms:
        raise InvalidActorPayload(
            f"{what}: exit offset {exit_offset_ms}ms must be after enter offset {enter_offset_ms}ms"
        )


@dataclass(frozen=True)
class TimelineEntity:
    """A visual segment on the stage (image, video or blank sentinel)."""
    id: int
    kind: EntityKind
    enter_offset_ms: int
    exit_offset_ms: int
    resource_ref: str = ""
    code: Optional[str] = None      # image code, images only

    def __post_init__(self):
        _check_offsets(f"{self.kind.value} actor {self.id}", self.enter_offset_ms, self.exit_offset_ms)

    @property
    def duration_ms(self) -> int:
        return self.exit_offset_ms - self.enter_offset_ms

    @classmethod
    def blank(cls, id: int, exit_offset_ms: int = BLANK_EXIT_OFFSET_MS) -> 'TimelineEntity':
        return cls(id=id, kind=EntityKind.BLANK, enter_offset_ms=0, exit_offset_ms=exit_offset_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "enter_offset_ms": self.enter_offset_ms,
            "exit_offset_ms": self.exit_offset_ms,
            "resource_ref": self.resource_ref,
            "code": self.code,
        }


@dataclass
class SpeechEntity:
    """A speech segment: timeline offsets plus an owned audio track."""
    id: int
    enter_offset_ms: int
    exit_offset_ms: int
    track: AudioTrack

    def __post_init__(self):
        _check_offsets(f"speech {self.id}", self.enter_offset_ms, self.exit_offset_ms)

    @property
    def duration_ms(self) -> int:
        return self.exit_offset_ms - self.enter_offset_ms

    @property
    def resource_ref(self) -> str:
        return self.track.src

    @property
    def fade(self) -> Optional[FadeSpec]:
        return self.track.fade_spec

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "enter_offset_ms": self.enter_offset_ms,
            "exit_offset_ms": self.exit_offset_ms,
            **self.track.to_dict(),
        }


@dataclass
class BackgroundEntity:
    """Looping background music. Volume is a 0-1 fraction."""
    track: AudioTrack
    volume: float

    @property
    def resource_ref(self) -> str:
        return self.track.src

    def to_dict(self) -> dict:
        return {
            "volume": self.volume,
            "loop": True,
            **self.track.to_dict(),
        }
