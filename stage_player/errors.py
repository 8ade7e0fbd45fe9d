"""
Error taxonomy and result values for the stage player.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class PlayerError(Exception):
    """Base class for every stage player error."""


class ConfigMissing(PlayerError):
    """No configuration was supplied to parse."""


class ConfigInvalid(PlayerError):
    """The configuration document is structurally unusable."""


class InvalidActorPayload(PlayerError):
    """A single actor entry is malformed and was skipped."""


class AudioHandleUnavailable(PlayerError):
    """An audio operation was requested on a track with no usable handle."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: PlayerError

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
