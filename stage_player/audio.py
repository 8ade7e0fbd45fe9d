"""
Audio capability for supporting actors.

The audio engine itself is external: anything implementing ``AudioHandle``
can be plugged in through an ``AudioFactory``. ``AudioTrack`` wraps one
handle and turns a missing or failing handle into logged no-ops, so the
visual timeline never waits on audio.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .clock import Scheduler
from .config import SPEECH_FADE_IN_MS
from .errors import AudioHandleUnavailable

logger = logging.getLogger('audio')


class AudioHandle(Protocol):
    """Opaque handle to one sound resource (play/pause/stop/fade/identify)."""

    def play(self, sound_id: Optional[int] = None) -> int:
        """Start a new sound, or resume ``sound_id``. Returns the sound id."""
        ...

    def pause(self, sound_id: Optional[int] = None) -> None:
        ...

    def stop(self, sound_id: Optional[int] = None) -> None:
        ...

    def fade(self, from_volume: float, to_volume: float, duration_ms: int,
             sound_id: Optional[int] = None) -> None:
        ...

    def playing(self, sound_id: Optional[int] = None) -> bool:
        ...

    def unload(self) -> None:
        ...


class AudioFactory(Protocol):
    def __call__(self, src: str, *, volume: float = 1.0, loop: bool = False) -> AudioHandle:
        ...


@dataclass(frozen=True)
class FadeSpec:
    """One-shot fade applied the first time a track plays."""
    from_volume: float = 0.0
    to_volume: float = 1.0
    duration_ms: int = SPEECH_FADE_IN_MS

    def to_dict(self) -> dict:
        return {
            "from_volume": self.from_volume,
            "to_volume": self.to_volume,
            "duration_ms": self.duration_ms,
        }


class AudioTrack:
    """
    One sound resource owned by a speech or background entity.

    Tracks the handle's sound id so pause/resume continue the same sound,
    and applies the fade-in only on the first play.
    """

    def __init__(self, src: str, handle: Optional[AudioHandle] = None,
                 fade: Optional[FadeSpec] = None):
        self.src = src
        self.handle = handle
        self.fade_spec = fade
        self.sound_id: Optional[int] = None
        self.already_faded = False

    @property
    def available(self) -> bool:
        return self.handle is not None

    @property
    def started(self) -> bool:
        """True once the handle has issued a sound id (played at least once)."""
        return self.sound_id is not None

    def play(self) -> bool:
        """Play a new sound, or resume the paused one."""
        def _play(handle: AudioHandle):
            self.sound_id = handle.play(self.sound_id)
            # only fade on the first start, not after un-pausing
            if not self.already_faded and self.fade_spec is not None:
                self.already_faded = True
                fade = self.fade_spec
                handle.fade(fade.from_volume, fade.to_volume, fade.duration_ms, self.sound_id)

        return self._run("play", _play)

    def pause(self) -> bool:
        """Pause the current sound, keeping its position."""
        if self.sound_id is None:
            logger.debug(f"Not pausing {self.src}: never played")
            return False
        return self._run("pause", lambda handle: handle.pause(self.sound_id))

    def stop(self) -> bool:
        """Stop the current sound; the next play starts from the beginning."""
        if self.sound_id is None:
            return False

        def _stop(handle: AudioHandle):
            handle.stop(self.sound_id)
            self.sound_id = None
            self.already_faded = False

        return self._run("stop", _stop)

    def is_playing(self) -> bool:
        """Ask the handle whether the current sound is audible."""
        if self.handle is None or self.sound_id is None:
            return False
        try:
            return bool(self.handle.playing(self.sound_id))
        except Exception as e:
            logger.error(f"Audio playing() failed for {self.src}: {e}")
            return False

    def unload(self):
        if self.handle is None:
            return
        self._run("unload", lambda handle: handle.unload())
        self.sound_id = None

    def to_dict(self) -> dict:
        return {
            "src": self.src,
            "sound_id": self.sound_id,
            "available": self.available,
            "fade": self.fade_spec.to_dict() if self.fade_spec else None,
        }

    def _run(self, name: str, op: Callable[[AudioHandle], None]) -> bool:
        try:
            if self.handle is None:
                raise AudioHandleUnavailable(f"no audio handle for '{self.src}'")
            op(self.handle)
            return True
        except AudioHandleUnavailable as e:
            logger.warning(f"Skipping audio {name}: {e}")
        except Exception as e:
            logger.error(f"Audio {name} failed for '{self.src}': {e}")
        return False


@dataclass
class _SimulatedSound:
    position_ms: float = 0.0
    resumed_at: Optional[float] = None  # clock reading while playing, None otherwise


class SimulatedAudioHandle:
    """
    In-memory ``AudioHandle`` that keeps time on a ``Scheduler``.

    Used for dry runs and tests: no sound is produced, but positions,
    pauses, natural ends and fades behave like a real engine.
    """

    _ids = itertools.count(1000)

    def __init__(self, scheduler: Scheduler, src: str = "", duration_ms: Optional[float] = None,
                 volume: float = 1.0, loop: bool = False):
        self._scheduler = scheduler
        self.src = src
        self.duration_ms = duration_ms
        self.volume = volume
        self.loop = loop
        self.unloaded = False
        self.fades: List[Tuple[float, float, int, Optional[int]]] = []
        self._sounds: Dict[int, _SimulatedSound] = {}

    def play(self, sound_id: Optional[int] = None) -> int:
        if self.unloaded:
            raise RuntimeError(f"'{self.src}' has been unloaded")
        if sound_id is None or sound_id not in self._sounds:
            sound_id = next(self._ids)
            self._sounds[sound_id] = _SimulatedSound()

        sound = self._sounds[sound_id]
        if self._ended(sound):
            sound.position_ms = 0.0
            sound.resumed_at = None
        if sound.resumed_at is None:
            sound.resumed_at = self._scheduler.now_ms()
        return sound_id

    def pause(self, sound_id: Optional[int] = None) -> None:
        for sound in self._targets(sound_id):
            if sound.resumed_at is not None:
                sound.position_ms = self._position(sound)
                sound.resumed_at = None

    def stop(self, sound_id: Optional[int] = None) -> None:
        for sound in self._targets(sound_id):
            sound.position_ms = 0.0
            sound.resumed_at = None

    def fade(self, from_volume: float, to_volume: float, duration_ms: int,
             sound_id: Optional[int] = None) -> None:
        self.fades.append((from_volume, to_volume, duration_ms, sound_id))
        self.volume = to_volume

    def playing(self, sound_id: Optional[int] = None) -> bool:
        return any(
            sound.resumed_at is not None and not self._ended(sound)
            for sound in self._targets(sound_id)
        )

    def seek(self, sound_id: Optional[int] = None) -> float:
        """Current position (ms) of ``sound_id``, or of the first sound."""
        sounds = self._targets(sound_id)
        return self._position(sounds[0]) if sounds else 0.0

    def unload(self) -> None:
        self._sounds.clear()
        self.unloaded = True

    def _targets(self, sound_id: Optional[int]) -> List[_SimulatedSound]:
        if sound_id is None:
            return list(self._sounds.values())
        sound = self._sounds.get(sound_id)
        return [sound] if sound else []

    def _position(self, sound: _SimulatedSound) -> float:
        position = sound.position_ms
        if sound.resumed_at is not None:
            position += self._scheduler.now_ms() - sound.resumed_at
        if self.duration_ms:
            if self.loop:
                position %= self.duration_ms
            else:
                position = min(position, self.duration_ms)
        return position

    def _ended(self, sound: _SimulatedSound) -> bool:
        if self.loop or not self.duration_ms:
            return False
        return self._position(sound) >= self.duration_ms


def simulated_audio_factory(scheduler: Scheduler,
                            durations: Optional[Dict[str, float]] = None) -> AudioFactory:
    """
    Build an ``AudioFactory`` producing ``SimulatedAudioHandle`` objects.

    Args:
        scheduler: Clock the simulated sounds keep time on
        durations: Optional natural length (ms) per source
    """
    durations = durations or {}

    def factory(src: str, *, volume: float = 1.0, loop: bool = False) -> SimulatedAudioHandle:
        return SimulatedAudioHandle(scheduler, src=src, duration_ms=durations.get(src),
                                    volume=volume, loop=loop)

    return factory
