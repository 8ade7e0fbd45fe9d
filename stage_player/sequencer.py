"""
Playback sequencer for the stage player.

Drives the visual timeline and the speech timeline with one-shot timers on
a single shared clock, and keeps the background loop in step with
play/pause.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from .clock import Scheduler, TimerHandle
from .config import CROSSFADE_BUFFER_MS, SPEECH_FADE_IN_MS
from .models import EntityKind, SpeechEntity, TimelineEntity
from .registry import ActorRegistry

logger = logging.getLogger('sequencer')


class PlayerState(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass
class TrackCursor:
    """Position of one track plus the timing of its active segment."""
    name: str
    index: Optional[int] = None
    segment_duration_ms: float = 0.0            # nominal time left when the segment (re)started
    segment_started_at: Optional[float] = None  # clock reading at (re)start
    paused_at: Optional[float] = None
    timer: Optional[TimerHandle] = None

    def advance(self) -> int:
        self.index = 0 if self.index is None else self.index + 1
        return self.index

    def begin_segment(self, now: float, duration_ms: float):
        self.segment_started_at = now
        self.segment_duration_ms = duration_ms
        self.paused_at = None

    def arm(self, scheduler: Scheduler, delay_ms: float, callback: Callable[[], None]):
        """Arm the track's timer, replacing any pending one."""
        self.cancel_timer()

        def _fire():
            self.timer = None
            callback()

        self.timer = scheduler.call_later(delay_ms, _fire)

    def cancel_timer(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    @property
    def armed(self) -> bool:
        return self.timer is not None

    def elapsed_ms(self) -> Optional[float]:
        """Time played in the active segment before the last pause."""
        if self.segment_started_at is None or self.paused_at is None:
            return None
        return max(0.0, self.paused_at - self.segment_started_at)

    def remaining_ms(self, now: float) -> float:
        if self.segment_started_at is None:
            return 0.0
        until = self.paused_at if self.paused_at is not None else now
        return max(0.0, self.segment_duration_ms - (until - self.segment_started_at))

    def reset(self):
        self.cancel_timer()
        self.index = None
        self.segment_duration_ms = 0.0
        self.segment_started_at = None
        self.paused_at = None


class Sequencer:
    """
    Core playback state machine.

    The visual and speech tracks each keep their own cursor but share one
    scheduler, so both measure elapsed time on the same clock. Each track
    has at most one pending timer; arming a new one cancels the old.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        registry: Optional[ActorRegistry] = None,
        *,
        crossfade_buffer_ms: float = CROSSFADE_BUFFER_MS,
        speech_fade_in_ms: float = SPEECH_FADE_IN_MS,
    ):
        self.scheduler = scheduler
        self.registry = registry
        self.crossfade_buffer_ms = crossfade_buffer_ms
        self.speech_fade_in_ms = speech_fade_in_ms

        self.state: PlayerState = PlayerState.IDLE
        self.visual = TrackCursor("visual")
        self.speech = TrackCursor("speech")

        # Speech delay: a freshly advanced track starts after the fade-in delay
        self.speech_delay_pending: bool = False
        self._speech_delay_timer: Optional[TimerHandle] = None

        # Speech tracks that were audible when playback paused, by id
        self._paused_speech_ids: Set[int] = set()

        # Support assets (background + speech loop) load once per play session
        self._support_assets_loaded: bool = False

        # Callbacks
        self._on_change: Optional[Callable[[], None]] = None
        self._on_state_change: Optional[Callable[[PlayerState], None]] = None

    def set_callbacks(
        self,
        on_change: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[[PlayerState], None]] = None,
    ):
        """Set callback functions for sequencer events."""
        self._on_change = on_change
        self._on_state_change = on_state_change

    # === Properties ===

    @property
    def is_playing(self) -> bool:
        return self.state is PlayerState.PLAYING

    @property
    def is_finished(self) -> bool:
        return self.state is PlayerState.FINISHED

    @property
    def support_assets_loaded(self) -> bool:
        return self._support_assets_loaded

    @property
    def active_actor(self) -> Optional[TimelineEntity]:
        if self.registry is None or self.visual.index is None:
            return None
        if self.visual.index >= len(self.registry.actors):
            return None
        return self.registry.actors[self.visual.index]

    @property
    def active_speech(self) -> Optional[SpeechEntity]:
        if self.registry is None or self.speech.index is None:
            return None
        if self.speech.index >= len(self.registry.audio):
            return None
        return self.registry.audio[self.speech.index]

    # === Commands ===

    def load_registry(self, registry: Optional[ActorRegistry]):
        """Replace the registry, returning to IDLE."""
        self.reset()
        self.registry = registry
        if registry is not None:
            logger.info(f"Loaded registry: {len(registry.actors)} actors, {len(registry.audio)} speech tracks")

    def start(self) -> bool:
        """Advance to the next visual actor and arm its timer."""
        if self.registry is None or not self.registry.actors:
            logger.warning("No actors loaded")
            return False

        index = self.visual.advance()
        if index > self.registry.last_actor_index:
            logger.warning(f"Visual index {index} past the last actor, finishing")
            self.finish()
            return False

        actor = self.registry.actors[index]
        self.visual.begin_segment(self.scheduler.now_ms(), actor.duration_ms)
        self._arm_visual()
        self._set_state(PlayerState.PLAYING)
        logger.debug(
            f"Actor {index} ({actor.kind.value}) on stage for {actor.duration_ms}ms",
            extra={"track": "visual", "index": index},
        )

        if not self._support_assets_loaded and actor.kind is EntityKind.IMAGE:
            self._support_assets_loaded = True
            self.load_support_assets()

        self._notify()
        return True

    def resume(self, elapsed_ms: float) -> bool:
        """Re-arm the active visual segment for the time it has left."""
        if self.registry is None or self.visual.index is None:
            return self.start()

        remaining = max(0.0, self.visual.segment_duration_ms - max(0.0, elapsed_ms))
        self.visual.begin_segment(self.scheduler.now_ms(), remaining)
        self._arm_visual()
        self._set_state(PlayerState.PLAYING)
        logger.debug(
            f"Actor {self.visual.index} resumed, {remaining:.0f}ms left",
            extra={"track": "visual", "index": self.visual.index,
                   "elapsed_ms": elapsed_ms, "remaining_ms": remaining},
        )
        self._notify()
        return True

    def load_support_assets(self):
        """Start the background loop and the speech loop."""
        self._ensure_background_playing()
        self.advance_speech()

    def advance_speech(self) -> bool:
        """Advance to the next speech track; it becomes audible after the fade-in delay."""
        if self.registry is None or not self.registry.audio:
            logger.debug("No speech tracks to play")
            return False
        if self.speech.index is not None and self.speech.index >= len(self.registry.audio) - 1:
            return False

        index = self.speech.advance()
        speech = self.registry.audio[index]
        self.speech.begin_segment(self.scheduler.now_ms(), speech.duration_ms)
        self.speech_delay_pending = True
        self._play_speech()
        self._arm_speech()
        logger.debug(
            f"Speech {index} queued for {speech.duration_ms}ms",
            extra={"track": "speech", "index": index},
        )
        self._notify()
        return True

    def resume_speech(self, elapsed_ms: float) -> bool:
        """
        Re-arm the active speech track for the time it has left.

        The track continues immediately if it was audible at the last pause
        or its fade-in delay had not elapsed yet. A track that already
        played out stays silent.
        """
        if self.active_speech is None:
            return False

        remaining = max(0.0, self.speech.segment_duration_ms - max(0.0, elapsed_ms))
        self.speech.begin_segment(self.scheduler.now_ms(), remaining)
        resume_audio = self.speech_delay_pending or self.speech.index in self._paused_speech_ids
        self._paused_speech_ids.discard(self.speech.index)
        self.speech_delay_pending = False
        if resume_audio:
            self._play_speech()
        else:
            logger.debug(f"Speech {self.speech.index} already played out, not replaying")
        self._arm_speech()
        logger.debug(
            f"Speech {self.speech.index} resumed, {remaining:.0f}ms left",
            extra={"track": "speech", "index": self.speech.index,
                   "elapsed_ms": elapsed_ms, "remaining_ms": remaining},
        )
        return True

    def pause(self) -> bool:
        """Pause playback. Does nothing unless currently playing."""
        if self.state is not PlayerState.PLAYING:
            logger.debug(f"Ignoring pause while {self.state.value}")
            return False

        self.visual.cancel_timer()
        self.speech.cancel_timer()
        self._cancel_speech_delay()

        if self.registry is not None:
            bg = self.registry.bg_music
            if bg is not None and bg.track.is_playing():
                bg.track.pause()
            # earlier tracks may still be overrunning their segment
            for speech in self.registry.audio:
                if speech.track.is_playing():
                    speech.track.pause()
                    self._paused_speech_ids.add(speech.id)

        now = self.scheduler.now_ms()
        self.visual.paused_at = now
        if self.speech.segment_started_at is not None:
            self.speech.paused_at = now

        self._set_state(PlayerState.PAUSED)
        logger.info(f"Paused at actor {self.visual.index}, speech {self.speech.index}")
        self._notify()
        return True

    def play(self) -> bool:
        """Start fresh, or resume both tracks where the last pause left them."""
        if self.state is PlayerState.PLAYING:
            return True
        if self.registry is None:
            logger.warning("No registry loaded")
            return False

        visual_elapsed = self.visual.elapsed_ms()
        if self.state is PlayerState.PAUSED and visual_elapsed is not None:
            speech_elapsed = self.speech.elapsed_ms()
            self.resume(visual_elapsed)
            if speech_elapsed is not None:
                self.resume_speech(speech_elapsed)
            self._resume_overrunning_speech()
            logger.info(f"Resumed actor {self.visual.index} after {visual_elapsed:.0f}ms")
        elif not self.start():
            return False

        self._ensure_background_playing()
        return True

    def toggle_player_state(self) -> bool:
        """Flip between playing and paused. Returns True if now playing."""
        if self.state is PlayerState.PLAYING:
            self.pause()
            return False
        return self.play()

    def finish(self):
        """Stop everything and rewind both tracks."""
        self._halt()
        self._set_state(PlayerState.FINISHED)
        logger.info("Playback complete")
        self._notify()

    def reset(self):
        """Stop everything and return to IDLE."""
        self._halt()
        self._set_state(PlayerState.IDLE)
        self._notify()

    def get_status(self) -> Dict[str, Any]:
        """Get current sequencer status for broadcasting."""
        now = self.scheduler.now_ms()
        return {
            "state": self.state.value,
            "visual_index": self.visual.index,
            "speech_index": self.speech.index,
            "visual_remaining_ms": self.visual.remaining_ms(now),
            "speech_remaining_ms": self.speech.remaining_ms(now),
            "speech_delay_pending": self.speech_delay_pending,
        }

    # === Private Methods ===

    def _arm_visual(self):
        last = self.visual.index >= self.registry.last_actor_index
        target = self.finish if last else self.start
        self.visual.arm(
            self.scheduler,
            self.visual.segment_duration_ms + self.crossfade_buffer_ms,
            self._guarded(target, "visual"),
        )

    def _arm_speech(self):
        # the last speech track plays out on its own
        if self.speech.index >= len(self.registry.audio) - 1:
            self.speech.cancel_timer()
            return
        self.speech.arm(
            self.scheduler,
            self.speech.segment_duration_ms + self.crossfade_buffer_ms,
            self._guarded(self.advance_speech, "speech"),
        )

    def _play_speech(self):
        speech = self.active_speech
        if speech is None:
            return
        self._cancel_speech_delay()
        if self.speech_delay_pending:
            self._speech_delay_timer = self.scheduler.call_later(
                self.speech_fade_in_ms, self._guarded(self._play_delayed_speech, "speech")
            )
        else:
            speech.track.play()

    def _play_delayed_speech(self):
        self._speech_delay_timer = None
        self.speech_delay_pending = False
        speech = self.active_speech
        if speech is not None:
            speech.track.play()

    def _cancel_speech_delay(self):
        if self._speech_delay_timer is not None:
            self._speech_delay_timer.cancel()
            self._speech_delay_timer = None

    def _resume_overrunning_speech(self):
        for speech_id in sorted(self._paused_speech_ids):
            self.registry.audio[speech_id].track.play()
        self._paused_speech_ids.clear()

    def _ensure_background_playing(self):
        bg = self.registry.bg_music if self.registry else None
        if bg is None:
            return
        if not bg.track.started:
            bg.track.play()
        elif bg.track.is_playing():
            logger.debug(f"Background music '{bg.resource_ref}' already playing, leaving it")
        else:
            bg.track.play()

    def _halt(self):
        self.visual.cancel_timer()
        self.speech.cancel_timer()
        self._cancel_speech_delay()

        if self.registry is not None:
            if self.registry.bg_music is not None:
                self.registry.bg_music.track.stop()
            for speech in self.registry.audio:
                speech.track.stop()

        self.visual.reset()
        self.speech.reset()
        self._paused_speech_ids.clear()
        self.speech_delay_pending = False
        self._support_assets_loaded = False

    def _guarded(self, fn: Callable[[], Any], track: str) -> Callable[[], None]:
        """Wrap a timer callback so a failure ends playback instead of orphaning timers."""
        def _fire():
            try:
                fn()
            except Exception:
                logger.exception(f"Error during {track} transition, finishing playback",
                                 extra={"track": track})
                try:
                    self.finish()
                except Exception:
                    logger.exception("Could not finish playback cleanly")
        return _fire

    def _set_state(self, state: PlayerState):
        if state is self.state:
            return
        self.state = state
        if self._on_state_change:
            self._on_state_change(state)

    def _notify(self):
        if self._on_change:
            self._on_change()
