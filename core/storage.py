import json
import logging
import os

logger = logging.getLogger(__name__)


class JsonDocument:
    """A single JSON object on disk, always rewritten as a whole."""

    def __init__(self, path: str):
        self.path = path

    def read(self) -> dict | None:
        """Return the stored object, or None when there is nothing usable on disk."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError):
            logger.warning("Could not read %s, starting fresh", self.path, exc_info=True)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object", self.path)
            return None
        return data

    def write(self, data: dict) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as out:
            json.dump(data, out, indent=2)
        os.replace(tmp_path, self.path)
