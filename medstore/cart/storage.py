from __future__ import annotations

import json
import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_SESSION_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def valid_session_id(session_id: str) -> bool:
    return bool(_SESSION_RE.match(session_id or ""))


class CartFileStorage:
    """
    One JSON file per session: <directory>/<session_id>.json

    Writes go through a single background worker so a slow disk never holds
    up a cart command. A failed write is logged and dropped.
    """

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cart-storage")

    def _path(self, session_id: str) -> Path:
        if not valid_session_id(session_id):
            raise ValueError(f"bad session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    def _write(self, session_id: str, data: Dict[str, Any]) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self._path(session_id)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False, default=str), encoding="utf-8")
            tmp.replace(path)
        except Exception:
            logger.exception("could not persist cart %s", session_id)

    def save(self, session_id: str, data: Dict[str, Any]) -> Future:
        return self._executor.submit(self._write, session_id, data)

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            path = self._path(session_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("unreadable cart file %s, starting empty", path)
            return None

    def _unlink(self, session_id: str) -> None:
        try:
            self._path(session_id).unlink(missing_ok=True)
        except ValueError:
            return
        except OSError:
            logger.exception("could not delete cart %s", session_id)

    def delete(self, session_id: str) -> Future:
        # runs after every save queued before it
        return self._executor.submit(self._unlink, session_id)

    def flush(self) -> None:
        # wait for queued writes
        self._executor.submit(lambda: None).result()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
