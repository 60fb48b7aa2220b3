"""Durable display-name -> store-name mapping for knowledge stores."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class StoreRegistry:
    """JSON file registry so store creation stays idempotent across restarts.

    The file is read once; afterwards the in-memory mapping is authoritative
    and every ``record`` updates it before writing through. Read errors
    degrade to an empty registry (stores get adopted or created again); write
    errors are logged and the in-memory mapping keeps the new entry. Callers
    serialize read-modify-write themselves.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._mapping: Optional[Dict[str, str]] = None

    def _read_file(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("Store registry unreadable, starting empty", path=str(self.path), error=str(e))
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Store registry corrupt, starting empty", path=str(self.path), error=str(e))
            return {}

        if not isinstance(data, dict):
            logger.warning("Store registry has unexpected shape", path=str(self.path))
            return {}
        return {str(k): str(v) for k, v in data.items() if isinstance(v, str)}

    def load(self) -> Dict[str, str]:
        if self._mapping is None:
            self._mapping = self._read_file()
        return dict(self._mapping)

    def get(self, display_name: str) -> Optional[str]:
        return self.load().get(display_name)

    def save(self, mapping: Dict[str, str]) -> bool:
        """Write atomically: temp file in the same directory, then replace."""
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".store-registry-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(mapping, f, ensure_ascii=False, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error("Failed to persist store registry", path=str(self.path), error=str(e))
            return False
        return True

    def record(self, display_name: str, store_name: str) -> bool:
        """Remember the mapping in memory, then write it through to disk."""
        mapping = self.load()
        if mapping.get(display_name) == store_name:
            return True
        mapping[display_name] = store_name
        self._mapping = mapping
        return self.save(dict(mapping))
