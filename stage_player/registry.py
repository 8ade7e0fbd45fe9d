"""
Actor registry: the visual timeline, the speech timeline and the
background track, built in one pass from a configuration document.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from .audio import AudioFactory, AudioTrack, FadeSpec
from .config import (
    BLANK_EXIT_OFFSET_MS,
    DEFAULT_BASE_IMAGE_PATH,
    DEFAULT_BG_VOLUME_PCT,
    IMAGE_EXTENSION,
    SPEECH_FADE_IN_MS,
)
from .errors import ConfigInvalid, ConfigMissing, Err, InvalidActorPayload, Ok, Result
from .models import BackgroundEntity, EntityKind, SpeechEntity, TimelineEntity
from .schemas import (
    BackgroundMusicConfig,
    ImageActorConfig,
    PresentationConfig,
    SpeechConfig,
    VideoActorConfig,
    ordered_entries,
)

logger = logging.getLogger('registry')


@dataclass
class ActorRegistry:
    """Everything the sequencer plays. Read-only once built."""
    actors: List[TimelineEntity] = field(default_factory=list)
    audio: List[SpeechEntity] = field(default_factory=list)
    bg_music: Optional[BackgroundEntity] = None
    name: Optional[str] = None
    leader: Any = None
    base_image_path: str = DEFAULT_BASE_IMAGE_PATH
    bg_volume_pct: float = DEFAULT_BG_VOLUME_PCT
    skipped: int = 0

    @property
    def bg_volume_level(self) -> float:
        """Background volume as a 0-1 fraction."""
        return self.bg_volume_pct / 100

    @property
    def last_actor_index(self) -> int:
        return len(self.actors) - 1

    def unload(self):
        """Release every audio handle owned by this registry."""
        for speech in self.audio:
            speech.track.unload()
        if self.bg_music:
            self.bg_music.track.unload()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "leader": self.leader,
            "actors": [a.to_dict() for a in self.actors],
            "audio": [s.to_dict() for s in self.audio],
            "bg_music": self.bg_music.to_dict() if self.bg_music else None,
            "base_image_path": self.base_image_path,
            "bg_volume_level": self.bg_volume_level,
        }


def resolve_volume_pct(value: Any, default: float = DEFAULT_BG_VOLUME_PCT) -> float:
    """Return ``value`` if it is a percentage in [0, 100], else ``default``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value) or not 0 <= value <= 100:
        return default
    return float(value)


def resolve_base_path(value: Any, default: str = DEFAULT_BASE_IMAGE_PATH) -> str:
    """Return ``value`` without trailing slashes if it is a usable path, else ``default``."""
    if isinstance(value, str) and value.strip():
        stripped = value.strip().rstrip("/")
        if stripped:
            return stripped
    return default


def image_src(base_image_path: str, code: str) -> str:
    return f"{base_image_path}/{code}.{IMAGE_EXTENSION}"


def build_registry(
    config: Optional[Mapping],
    *,
    base_image_path: str = DEFAULT_BASE_IMAGE_PATH,
    bg_volume_pct: float = DEFAULT_BG_VOLUME_PCT,
    audio_factory: Optional[AudioFactory] = None,
    speech_fade_in_ms: int = SPEECH_FADE_IN_MS,
    blank_exit_offset_ms: int = BLANK_EXIT_OFFSET_MS,
) -> Result:
    """
    Build an ActorRegistry from a configuration document.

    Args:
        config: Document with actorMap, audioMap, backgroundMusic, name,
            leader and optional overrides
        base_image_path: Image base path used when no override is given
        bg_volume_pct: Background volume (0-100) used when no override is given
        audio_factory: Creates audio handles; without one, audio is a no-op
        speech_fade_in_ms: Fade-in length for speech tracks
        blank_exit_offset_ms: Length of the closing blank sentinel

    Returns:
        Ok(ActorRegistry), or Err(ConfigMissing / ConfigInvalid). Malformed
        actor entries are skipped, not fatal.
    """
    if config is None:
        return Err(ConfigMissing("no configuration supplied"))
    if not isinstance(config, Mapping):
        return Err(ConfigInvalid(f"configuration must be a mapping, got {type(config).__name__}"))

    try:
        doc = PresentationConfig.model_validate(dict(config))
    except ValidationError as e:
        return Err(ConfigInvalid(f"configuration rejected ({e.error_count()} errors): {_first_error(e)}"))

    overrides = doc.overrides
    base_path = resolve_base_path(
        overrides.actor_image_base_path,
        resolve_base_path(base_image_path),
    )
    volume_pct = resolve_volume_pct(
        overrides.bg_volume_level if overrides.bg_volume_level is not None else bg_volume_pct
    )
    if overrides.bg_volume_level is not None and volume_pct != overrides.bg_volume_level:
        logger.warning(f"Ignoring bgVolumeLevel override {overrides.bg_volume_level!r}, using {volume_pct}%")

    registry = ActorRegistry(
        name=doc.name,
        leader=doc.leader,
        base_image_path=base_path,
        bg_volume_pct=volume_pct,
    )

    for raw in ordered_entries(doc.actor_map):
        try:
            registry.actors.append(_build_actor(len(registry.actors), raw, base_path))
        except InvalidActorPayload as e:
            registry.skipped += 1
            logger.warning(f"Skipping actor entry: {e}")

    # blank stage so the last actor can fade out before the sequence ends
    registry.actors.append(TimelineEntity.blank(len(registry.actors), blank_exit_offset_ms))

    fade = FadeSpec(from_volume=0.0, to_volume=1.0, duration_ms=speech_fade_in_ms)
    for raw in ordered_entries(doc.audio_map):
        try:
            registry.audio.append(_build_speech(len(registry.audio), raw, audio_factory, fade))
        except InvalidActorPayload as e:
            registry.skipped += 1
            logger.warning(f"Skipping speech entry: {e}")

    registry.bg_music = _build_background(doc.background_music, registry.bg_volume_level, audio_factory)

    logger.info(
        f"Built registry '{registry.name}': {len(registry.actors) - 1} actors, "
        f"{len(registry.audio)} speech tracks, "
        f"background={'yes' if registry.bg_music else 'no'}, skipped={registry.skipped}"
    )
    return Ok(registry)


def _build_actor(actor_id: int, raw: Any, base_image_path: str) -> TimelineEntity:
    if not isinstance(raw, Mapping):
        raise InvalidActorPayload(f"actor {actor_id} is not an object: {raw!r}")

    try:
        if "code" in raw:
            image = ImageActorConfig.model_validate(dict(raw))
            return TimelineEntity(
                id=actor_id,
                kind=EntityKind.IMAGE,
                enter_offset_ms=image.enter_stage,
                exit_offset_ms=image.exit_stage,
                resource_ref=image_src(base_image_path, image.code),
                code=image.code,
            )
        if "src" in raw:
            video = VideoActorConfig.model_validate(dict(raw))
            return TimelineEntity(
                id=actor_id,
                kind=EntityKind.VIDEO,
                enter_offset_ms=video.enter_stage,
                exit_offset_ms=video.exit_stage,
                resource_ref=video.src,
            )
    except ValidationError as e:
        raise InvalidActorPayload(f"actor {actor_id}: {_first_error(e)}") from e

    raise InvalidActorPayload(f"actor {actor_id} has neither 'code' nor 'src'")


def _build_speech(speech_id: int, raw: Any, audio_factory: Optional[AudioFactory],
                  fade: FadeSpec) -> SpeechEntity:
    if not isinstance(raw, Mapping):
        raise InvalidActorPayload(f"speech {speech_id} is not an object: {raw!r}")
    try:
        speech = SpeechConfig.model_validate(dict(raw))
    except ValidationError as e:
        raise InvalidActorPayload(f"speech {speech_id}: {_first_error(e)}") from e

    return SpeechEntity(
        id=speech_id,
        enter_offset_ms=speech.enter_stage,
        exit_offset_ms=speech.exit_stage,
        track=_make_track(speech.file_name, audio_factory, fade=fade),
    )


def _build_background(raw: Optional[dict], volume: float,
                      audio_factory: Optional[AudioFactory]) -> Optional[BackgroundEntity]:
    if not raw:
        logger.warning("No background music configured")
        return None
    try:
        music = BackgroundMusicConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Skipping background music: {_first_error(e)}")
        return None

    track = _make_track(music.file_name, audio_factory, volume=volume, loop=True)
    return BackgroundEntity(track=track, volume=volume)


def _make_track(src: str, audio_factory: Optional[AudioFactory], *, volume: float = 1.0,
                loop: bool = False, fade: Optional[FadeSpec] = None) -> AudioTrack:
    handle = None
    if audio_factory is not None:
        try:
            handle = audio_factory(src, volume=volume, loop=loop)
        except Exception as e:
            logger.error(f"Could not create audio handle for '{src}': {e}")
    return AudioTrack(src, handle, fade)


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
