"""
WebPlayer: command surface for rendering and control clients.

Owns the registry and the sequencer, and publishes an immutable
``PlaybackSnapshot`` to subscribers whenever something visible changes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from .audio import AudioFactory
from .clock import Debouncer, Scheduler
from .config import PlayerSettings, get_settings
from .models import TimelineEntity
from .registry import ActorRegistry, build_registry, resolve_base_path, resolve_volume_pct
from .sequencer import PlayerState, Sequencer

logger = logging.getLogger('player')

SnapshotListener = Callable[['PlaybackSnapshot'], None]


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Read-only view of the player for rendering."""
    state: PlayerState
    active_actor_id: Optional[int]
    active_s_actor_id: Optional[int]
    is_playing: bool
    finished_playback: bool
    width: Optional[int]
    height: Optional[int]
    actors: Tuple[TimelineEntity, ...]
    audio: Tuple[dict, ...]
    bg_music: Optional[dict]
    name: Optional[str]
    leader: Any
    base_image_path: str
    bg_volume_level: float

    @property
    def active_actor(self) -> Optional[TimelineEntity]:
        if self.active_actor_id is None or self.active_actor_id >= len(self.actors):
            return None
        return self.actors[self.active_actor_id]

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "active_actor_id": self.active_actor_id,
            "active_s_actor_id": self.active_s_actor_id,
            "is_playing": self.is_playing,
            "finished_playback": self.finished_playback,
            "width": self.width,
            "height": self.height,
            "actors": [a.to_dict() for a in self.actors],
            "audio": list(self.audio),
            "bg_music": self.bg_music,
            "name": self.name,
            "leader": self.leader,
            "base_image_path": self.base_image_path,
            "bg_volume_level": self.bg_volume_level,
        }


class WebPlayer:
    """
    Presentation player.

    Commands never raise: configuration problems are logged and leave the
    player as it was.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        settings: Optional[PlayerSettings] = None,
        audio_factory: Optional[AudioFactory] = None,
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler
        self.audio_factory = audio_factory

        self.base_image_path = resolve_base_path(self.settings.base_image_path)
        self._bg_volume_pct = resolve_volume_pct(self.settings.bg_volume_pct)
        self.width: Optional[int] = None
        self.height: Optional[int] = None
        self.registry: Optional[ActorRegistry] = None

        self.sequencer = Sequencer(
            scheduler,
            crossfade_buffer_ms=self.settings.crossfade_buffer_ms,
            speech_fade_in_ms=self.settings.speech_fade_in_ms,
        )
        self.sequencer.set_callbacks(on_change=self._publish)

        self._listeners: List[SnapshotListener] = []
        self._dimensions = Debouncer(scheduler, self.settings.dimension_debounce_ms, self._apply_dimensions)
        self._snapshot = self._build_snapshot()

    # === Snapshot ===

    @property
    def snapshot(self) -> PlaybackSnapshot:
        return self._snapshot

    @property
    def bg_volume_level(self) -> float:
        """Background volume as a 0-1 fraction."""
        return self._bg_volume_pct / 100

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # === Commands ===

    def parse_config(self, config: Any) -> bool:
        """Replace the registry with one built from ``config``."""
        try:
            result = build_registry(
                config,
                base_image_path=self.base_image_path,
                bg_volume_pct=self._bg_volume_pct,
                audio_factory=self.audio_factory,
                speech_fade_in_ms=self.settings.speech_fade_in_ms,
                blank_exit_offset_ms=self.settings.blank_exit_offset_ms,
            )
            if not result.ok:
                logger.error(f"Could not parse configuration: {type(result.error).__name__}: {result.error}")
                return False

            registry = result.value
            previous = self.registry
            self.sequencer.load_registry(registry)
            if previous is not None:
                previous.unload()

            self.registry = registry
            self.base_image_path = registry.base_image_path
            self._bg_volume_pct = registry.bg_volume_pct
        except Exception:
            logger.exception("Unexpected error while parsing configuration")
            return False

        self._publish()
        return True

    def toggle_player_state(self) -> bool:
        """Play if paused/idle/finished, pause if playing. Returns True if now playing."""
        if self.registry is None:
            logger.warning("Cannot toggle playback: no configuration parsed")
            return False
        playing = self.sequencer.toggle_player_state()
        self._publish()
        return playing

    def set_base_image_path(self, path: Any):
        """Base path for image actors built by the next ``parse_config``."""
        self.base_image_path = resolve_base_path(path, resolve_base_path(self.settings.base_image_path))
        self._publish()

    def set_bg_volume_level(self, volume_pct: Any):
        """Background volume (0-100) for the next ``parse_config``; out of range falls back to the default."""
        self._bg_volume_pct = resolve_volume_pct(volume_pct)
        if self._bg_volume_pct != volume_pct:
            logger.warning(f"Background volume {volume_pct!r} out of range, using {self._bg_volume_pct}%")
        self._publish()

    def save_player_dimensions(self, width: Optional[int], height: Optional[int] = None):
        """Record stage dimensions; published once resizing settles."""
        self._dimensions(width, height)

    def close(self):
        """Stop playback and release audio."""
        self._listeners.clear()
        self._dimensions.cancel()
        self.sequencer.reset()
        if self.registry is not None:
            self.registry.unload()

    # === Private Methods ===

    def _apply_dimensions(self, width: Optional[int], height: Optional[int]):
        self.width = width
        self.height = width if height is None else height
        logger.debug(f"Stage dimensions {self.width}x{self.height}")
        self._publish()

    def _build_snapshot(self) -> PlaybackSnapshot:
        registry = self.registry
        sequencer = self.sequencer
        return PlaybackSnapshot(
            state=sequencer.state,
            active_actor_id=sequencer.visual.index,
            active_s_actor_id=sequencer.speech.index,
            is_playing=sequencer.is_playing,
            finished_playback=sequencer.is_finished,
            width=self.width,
            height=self.height,
            actors=tuple(registry.actors) if registry else (),
            audio=tuple(s.to_dict() for s in registry.audio) if registry else (),
            bg_music=registry.bg_music.to_dict() if registry and registry.bg_music else None,
            name=registry.name if registry else None,
            leader=registry.leader if registry else None,
            base_image_path=self.base_image_path,
            bg_volume_level=self.bg_volume_level,
        )

    def _publish(self):
        self._snapshot = self._build_snapshot()
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}")
