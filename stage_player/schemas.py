"""Pydantic schemas for presentation configuration documents."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _ConfigModel(BaseModel):
    # camelCase keys from the document, snake_case accepted as well
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Timeline entries
# ---------------------------------------------------------------------------


class _StageEntry(_ConfigModel):
    enter_stage: int = Field(..., alias="enterStage", ge=0)
    exit_stage: int = Field(..., alias="exitStage", ge=0)

    @model_validator(mode="after")
    def _exit_after_enter(self):
        if self.exit_stage <= self.enter_stage:
            raise ValueError("exitStage must be greater than enterStage")
        return self


class ImageActorConfig(_StageEntry):
    code: str = Field(..., min_length=1)


class VideoActorConfig(_StageEntry):
    src: str = Field(..., min_length=1)


class SpeechConfig(_StageEntry):
    file_name: str = Field(..., alias="fileName", min_length=1)


class BackgroundMusicConfig(_ConfigModel):
    file_name: str = Field(..., alias="fileName", min_length=1)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Overrides(_ConfigModel):
    # validated by the registry so a bad override falls back to its default
    actor_image_base_path: Any = Field(default=None, alias="actorImageBasePath")
    bg_volume_level: Any = Field(default=None, alias="bgVolumeLevel")


class PresentationConfig(_ConfigModel):
    name: Optional[str] = None
    leader: Any = None
    actor_map: Union[Dict[str, Any], List[Any]] = Field(default_factory=dict, alias="actorMap")
    audio_map: Union[Dict[str, Any], List[Any]] = Field(default_factory=dict, alias="audioMap")
    background_music: Optional[Dict[str, Any]] = Field(default=None, alias="backgroundMusic")
    overrides: Overrides = Field(default_factory=Overrides)


def ordered_entries(entries: Union[Dict[str, Any], List[Any]]) -> List[Any]:
    """
    Entry values in playback order.

    Lists keep their order. Mappings put integer-like keys first in
    ascending numeric order, then the remaining keys in insertion order.
    """
    if isinstance(entries, list):
        return list(entries)
    numeric = sorted((k for k in entries if str(k).isdigit()), key=lambda k: int(k))
    others = [k for k in entries if not str(k).isdigit()]
    return [entries[k] for k in numeric + others]
