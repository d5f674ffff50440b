"""
Durable mirror for cache entries.

Entries live in one JSON file stamped with a version string. A file written
under another version, or one that cannot be parsed, is treated as empty so
a format change simply starts the cache cold.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Tuple, Union

logger = logging.getLogger(__name__)


class JsonFileMirror:
    """
    Args:
        path: File holding the mirrored entries
        version: Cache format version; mismatching files are ignored
    """

    def __init__(self, path: Union[str, Path], version: str):
        self.path = Path(path)
        self.version = version

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache mirror {self.path}: {e}")
            return {}
        if not isinstance(data, dict) or data.get("version") != self.version:
            logger.info(f"Cache mirror {self.path} has version {data.get('version') if isinstance(data, dict) else None}, expected {self.version}")
            return {}
        entries = data.get("entries")
        return entries if isinstance(entries, dict) else {}

    def _write(self, entries: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"version": self.version, "entries": entries})
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def load(self) -> Dict[str, Tuple[Any, float]]:
        """All mirrored entries as key -> (value, written_at)."""
        loaded = {}
        for key, item in self._read().items():
            try:
                loaded[key] = (item["value"], float(item["written_at"]))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed mirror entry {key}")
        return loaded

    def save(self, key: str, value: Any, written_at: float) -> None:
        entries = self._read()
        entries[key] = {"value": value, "written_at": written_at}
        self._write(entries)

    def delete(self, key: str) -> None:
        entries = self._read()
        if entries.pop(key, None) is not None:
            self._write(entries)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
