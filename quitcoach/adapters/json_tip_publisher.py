"""JSON file tip publisher — implements TipPublisherPort.

Writes the latest coaching tip to a small JSON document that widgets and
other processes can poll. The write goes through a temp file and a rename
so readers never see a half-written document.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonTipPublisher:
    """Publishes {"message", "timestamp"} to a JSON file."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    async def publish_latest_tip(self, message: str, timestamp: datetime) -> None:
        await asyncio.to_thread(self._write, message, timestamp)
        logger.debug("Latest tip published to %s", self._path)

    def _write(self, message: str, timestamp: datetime) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"message": message, "timestamp": timestamp.isoformat()}
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def read_latest_tip(self) -> dict | None:
        """Return the last published tip, or None if nothing was published yet."""
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Unreadable tip file %s: %s", self._path, exc)
            return None
