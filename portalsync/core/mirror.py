"""Durable JSON sidecar for cached collections."""

import json
import logging
from pathlib import Path

from ..models.cache import CacheEntry

logger = logging.getLogger(__name__)


class PersistentMirror:
    """Stores one JSON file per collection key.

    File names carry the schema version (``tasks.v1.json``) and the payload
    repeats it, so entries written by an older layout are never trusted.
    Unreadable or malformed files read as absent.
    """

    def __init__(self, directory: Path, schema_version: int = 1) -> None:
        """Initialize mirror.

        Args:
            directory: Directory holding the cache files
            schema_version: Version stamped into keys and payloads
        """
        self.directory = Path(directory)
        self.schema_version = schema_version

    def path_for(self, key: str) -> Path:
        """Get the file path for a collection key."""
        return self.directory / f"{key}.v{self.schema_version}.json"

    def read(self, key: str) -> CacheEntry | None:
        """Load a stored entry, or None if missing or unusable."""
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path) as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", path, e)
            return None

        entry = CacheEntry.from_payload(payload, self.schema_version)
        if entry is None:
            logger.warning("Ignoring cache file %s with unexpected shape or version", path)
        return entry

    def write(self, key: str, entry: CacheEntry) -> bool:
        """Persist an entry, replacing the previous file atomically.

        Returns:
            True if the entry was written
        """
        path = self.path_for(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(entry.to_payload(self.schema_version), f, default=str)
                f.write("\n")
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not persist cache entry %s: %s", key, e)
            return False
        return True

    def clear(self, key: str) -> None:
        """Remove the stored entry for a key."""
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not clear cache entry %s: %s", key, e)

    def keys(self) -> list[str]:
        """Collection keys with a file for the current schema version."""
        if not self.directory.exists():
            return []
        suffix = f".v{self.schema_version}.json"
        return sorted(p.name[: -len(suffix)] for p in self.directory.glob(f"*{suffix}"))
