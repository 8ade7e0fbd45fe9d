"""
Stage player configuration via pydantic-settings.

Module-level constants are the documented defaults; ``PlayerSettings``
lets each of them be overridden from the environment (``STAGE_PLAYER_*``)
or a ``.env`` file.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Timeline ────────────────────────────────────────────────────────────────
CROSSFADE_BUFFER_MS = 1000      # extra time per segment so fades overlap
SPEECH_FADE_IN_MS = 1000        # delay + fade-in length for new speech tracks
BLANK_EXIT_OFFSET_MS = 100000   # blank sentinel length, covers the final fade-out

# ── Assets ──────────────────────────────────────────────────────────────────
DEFAULT_BASE_IMAGE_PATH = "/static/actors"
DEFAULT_BG_VOLUME_PCT = 25
IMAGE_EXTENSION = "jpg"

# ── Debounce ────────────────────────────────────────────────────────────────
RESIZE_DEBOUNCE_MS = 200        # applied by callers to raw resize events
DIMENSION_DEBOUNCE_MS = 100     # applied before dimensions are published


class PlayerSettings(BaseSettings):
    """Player settings loaded from environment variables.

    All variables are prefixed with ``STAGE_PLAYER_`` (e.g.
    ``STAGE_PLAYER_CROSSFADE_BUFFER_MS``).
    """

    # Timeline
    crossfade_buffer_ms: int = CROSSFADE_BUFFER_MS
    speech_fade_in_ms: int = SPEECH_FADE_IN_MS
    blank_exit_offset_ms: int = BLANK_EXIT_OFFSET_MS

    # Assets
    base_image_path: str = DEFAULT_BASE_IMAGE_PATH
    bg_volume_pct: float = DEFAULT_BG_VOLUME_PCT

    # Debounce
    resize_debounce_ms: int = RESIZE_DEBOUNCE_MS
    dimension_debounce_ms: int = DIMENSION_DEBOUNCE_MS

    # Storage
    presentations_dir: str = "presentations"

    # Snapshot broadcast
    broadcast_host: str = "localhost"
    broadcast_port: int = 8770

    model_config = SettingsConfigDict(
        env_prefix="STAGE_PLAYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> PlayerSettings:
    """Return a cached ``PlayerSettings`` instance."""
    return PlayerSettings()
