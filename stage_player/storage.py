"""
Presentation storage for the stage player.
Handles saving and loading presentation documents from JSON files.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .schemas import ordered_entries

logger = logging.getLogger('storage')


class PresentationStorage:
    """
    Manages presentation documents stored as ``<name>.json`` files.
    """

    def __init__(self, storage_dir: Optional[str] = None):
        """
        Initialize presentation storage.

        Args:
            storage_dir: Directory for presentation files. Defaults to
                'presentations/' in the current directory.
        """
        self.storage_dir = Path(storage_dir or "presentations")
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Presentation storage directory: {self.storage_dir}")

    def save(self, name: str, config: Dict[str, Any]) -> str:
        """
        Save a presentation document.

        Args:
            name: Presentation name, used as the file name
            config: Presentation document

        Returns:
            Path to saved file
        """
        safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in name)
        filepath = self.storage_dir / f"{safe_name}.json"

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)

        logger.info(f"Saved presentation: {filepath}")
        return str(filepath)

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Load a presentation by name (partial, case-insensitive match on file name).

        Returns:
            The document, or None if not found or unreadable
        """
        name_lower = name.lower()
        for filepath in sorted(self.storage_dir.glob("*.json")):
            if name_lower in filepath.stem.lower():
                return self._load_file(filepath)

        logger.warning(f"Presentation not found: {name}")
        return None

    def load_file(self, filepath: str) -> Optional[Dict[str, Any]]:
        """Load a presentation from a specific file path."""
        return self._load_file(Path(filepath))

    def list_presentations(self) -> List[Dict[str, Any]]:
        """
        List all stored presentations.

        Returns:
            Summaries (name, actors, speech tracks, file path), sorted by name
        """
        presentations = []
        for filepath in self.storage_dir.glob("*.json"):
            data = self._load_file(filepath)
            if data is None:
                continue
            presentations.append({
                "name": data.get("name") or filepath.stem,
                "actors": len(ordered_entries(data.get("actorMap") or {})),
                "speech": len(ordered_entries(data.get("audioMap") or {})),
                "filepath": str(filepath),
            })

        presentations.sort(key=lambda p: str(p["name"]).lower())
        return presentations

    def _load_file(self, filepath: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {filepath}: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Error loading {filepath}: top level is not an object")
            return None
        logger.info(f"Loaded presentation: {data.get('name')} from {filepath}")
        return data


def create_demo_presentation() -> Dict[str, Any]:
    """
    Build a demo presentation document.

    Three image actors and a video, narrated by two speech tracks over a
    background loop.
    """
    return {
        "name": "Demo Presentation",
        "leader": True,
        "actorMap": {
            "0": {"code": "opening", "enterStage": 0, "exitStage": 4000},
            "1": {"code": "harbour", "enterStage": 4000, "exitStage": 9000},
            "2": {"src": "clips/lighthouse.mp4", "enterStage": 9000, "exitStage": 15000},
            "3": {"code": "closing", "enterStage": 15000, "exitStage": 19000},
        },
        "audioMap": {
            "0": {"fileName": "speech/intro.mp3", "enterStage": 0, "exitStage": 9000},
            "1": {"fileName": "speech/outro.mp3", "enterStage": 9000, "exitStage": 19000},
        },
        "backgroundMusic": {"fileName": "music/ambient-loop.mp3"},
        "overrides": {"bgVolumeLevel": 30},
    }
