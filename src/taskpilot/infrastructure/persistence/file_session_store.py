"""
File-based session archive.

Terminal session snapshots are written as JSON documents to
``{work_dir}/sessions/{session_id}.json``. The in-memory SessionRegistry
remains the source of truth for live sessions; this store only keeps
finished sessions around after they have been pruned or evicted, so the
CLI can inspect them across process restarts.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiofiles
import structlog


class FileSessionStore:
    """Archive session snapshots as JSON with per-session write locks."""

    def __init__(self, work_dir: str = ".taskpilot"):
        self.sessions_dir = Path(work_dir) / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self.logger = structlog.get_logger().bind(component="file_session_store")

    @asynccontextmanager
    async def _session_lock(self, session_id: str):
        """Per-session write lock, dropped once no writer holds or awaits it."""
        lock = self.locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self.locks[session_id]

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    async def save(self, session_id: str, snapshot: dict[str, Any]) -> bool:
        """Write the snapshot, bumping its ``_version``. Returns False on I/O errors."""
        async with self._session_lock(session_id):
            try:
                path = self._path(session_id)
                document = dict(snapshot)
                previous = await self._read(path)
                document["_version"] = (previous or {}).get("_version", 0) + 1
                document["_archived_at"] = datetime.now(timezone.utc).isoformat()

                content = json.dumps(document, indent=2, default=str)

                tmp_path = path.with_suffix(".json.tmp")
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(content)
                tmp_path.replace(path)

                self.logger.info(
                    "session_archived",
                    session_id=session_id,
                    version=document["_version"],
                )
                return True
            except (OSError, TypeError, ValueError) as e:
                self.logger.error("session_archive_failed", session_id=session_id, error=str(e))
                return False

    async def load(self, session_id: str) -> Optional[dict[str, Any]]:
        """Return the archived snapshot, or None if there is none."""
        document = await self._read(self._path(session_id))
        if document is not None:
            self.logger.debug("session_loaded", session_id=session_id)
        return document

    async def _read(self, path: Path) -> Optional[dict[str, Any]]:
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error("session_load_failed", file=path.name, error=str(e))
            return None

    async def list_sessions(self) -> list[str]:
        """Archived session ids, newest file first."""
        files = sorted(
            self.sessions_dir.glob("*.json"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        return [p.stem for p in files]

    def cleanup_old(self, days: int = 7) -> int:
        """Remove archives older than ``days``. Returns the number removed."""
        cutoff_time = time.time() - (days * 24 * 60 * 60)
        removed = 0
        for path in self.sessions_dir.glob("*.json"):
            if path.stat().st_mtime < cutoff_time:
                path.unlink()
                removed += 1
                self.logger.info("old_session_removed", file=path.name)
        return removed
