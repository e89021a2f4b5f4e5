"""
Local challenge cache for FocusDuel.

Mirrors the current challenge and the local participant id on disk so a
client can reload warm or keep going while the remote store is unreachable.
"""

import os
from pathlib import Path
from typing import Optional, Tuple, Union
import pydantic
import structlog

from ..config import get_config
from ..challenge.models import Challenge

logger = structlog.get_logger(__name__)


class LocalCache:
    """Two file-backed slots: current challenge and current participant id."""

    CHALLENGE_SLOT = "challenge.json"
    PARTICIPANT_SLOT = "participant_id"

    def __init__(self, cache_path: Optional[Union[str, Path]] = None):
        self.cache_dir = Path(cache_path if cache_path is not None else get_config().cache_path)

    def save_challenge(self, challenge: Challenge):
        self._write(self.CHALLENGE_SLOT, challenge.model_dump_json())

    def save_participant_id(self, participant_id: str):
        self._write(self.PARTICIPANT_SLOT, participant_id)

    def load_challenge(self) -> Optional[Challenge]:
        text = self._read(self.CHALLENGE_SLOT)
        if text is None:
            return None
        try:
            return Challenge.model_validate_json(text)
        except pydantic.ValidationError as e:
            logger.warning("Discarding corrupt cached challenge", error=str(e))
            return None

    def load_participant_id(self) -> Optional[str]:
        text = self._read(self.PARTICIPANT_SLOT)
        if text is None:
            return None
        return text.strip() or None

    def load(self) -> Tuple[Optional[Challenge], Optional[str]]:
        """Load both slots."""
        return self.load_challenge(), self.load_participant_id()

    def clear(self):
        """Remove both slots."""
        for name in (self.CHALLENGE_SLOT, self.PARTICIPANT_SLOT):
            try:
                (self.cache_dir / name).unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to clear cache slot", slot=name, error=str(e))
        logger.debug("Local cache cleared", cache_dir=str(self.cache_dir))

    def _read(self, name: str) -> Optional[str]:
        path = self.cache_dir / name
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read cache slot", slot=name, error=str(e))
            return None

    def _write(self, name: str, text: str):
        path = self.cache_dir / name
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            # Best-effort durability only
            logger.warning("Failed to write cache slot", slot=name, error=str(e))
