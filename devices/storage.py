"""Persistence of the last successful pairing."""

from pathlib import Path

import structlog
from pydantic import ValidationError

from .models import SavedConnection

log = structlog.get_logger(__name__)


class TokenStore:
    """Reads and writes one SavedConnection record as a JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> SavedConnection | None:
        """Return the saved connection, or None if missing or unreadable."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            log.warning("Could not read saved connection", path=str(self.path), error=str(e))
            return None

        try:
            return SavedConnection.model_validate_json(raw)
        except ValidationError as e:
            log.warning("Ignoring malformed saved connection", path=str(self.path), error=str(e))
            return None

    def save(self, saved: SavedConnection) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(saved.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        log.debug("Saved connection", path=str(self.path), ip=saved.ip)
