"""State management for Notion Clipper saves."""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Dict
from datetime import datetime
import json
from loguru import logger

STATE_FILE = Path.home() / ".notion_clipper" / "state.json"


@dataclass
class ClipState:
    """Record of one saved article."""
    source_url: str
    page_id: str
    page_url: str
    database_id: str
    saved_at: Optional[str] = None  # ISO format timestamp


class State:
    """Manage clip history in ~/.notion_clipper/state.json."""

    def __init__(self, state_file: Path = STATE_FILE):
        self.state_file = state_file
        self._ensure_state_file()

    def _ensure_state_file(self):
        """Ensure state file and directory exist."""
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.state_file.exists():
            self.state_file.write_text('{"clips": {}}')
            logger.debug("Created new state file: {}", self.state_file)

    def load(self) -> dict:
        """Load state from file."""
        try:
            return json.loads(self.state_file.read_text())
        except Exception as e:
            # Empty/corrupt state is fine, it is rebuilt on the next save
            logger.debug("State file not loaded (will be created): {}", e)
            return {"clips": {}}

    def save(self, state_data: dict):
        """Save state to file."""
        try:
            self.state_file.write_text(json.dumps(state_data, indent=2))
            logger.debug("Saved state to {}", self.state_file)
        except Exception as e:
            logger.error("Failed to save state: {}", e)
            raise

    def get_last_database(self) -> Optional[str]:
        return self.load().get('last_database')

    def record_clip(self, clip: ClipState):
        """Remember a saved clip and its database as the last used one."""
        data = self.load()
        if clip.saved_at is None:
            clip.saved_at = datetime.now().isoformat()
        data.setdefault('clips', {})[clip.source_url or clip.page_id] = asdict(clip)
        data['last_database'] = clip.database_id
        self.save(data)
        logger.info("Recorded clip: {} -> {}", clip.source_url or "(no url)", clip.page_url)

    def get_clip(self, source_url: str) -> Optional[ClipState]:
        clip = self.load().get('clips', {}).get(source_url)
        return ClipState(**clip) if clip else None

    def list_clips(self) -> Dict[str, ClipState]:
        return {key: ClipState(**value) for key, value in self.load().get('clips', {}).items()}
