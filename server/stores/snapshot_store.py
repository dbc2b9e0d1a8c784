"""
Disk-backed room snapshots.

Each room is written to its own JSON file (room-{CODE}.json) after every
mutation so rooms survive a process restart. This is best-effort
durability: the in-memory RoomManager is the source of truth, write
failures are logged and dropped, and a crash between a mutation and its
flush loses that mutation.

Writes are fire-and-forget when an event loop is running. The payload is
serialized immediately (capturing the state at mutation time) and the file
write runs in a worker thread. Writes for the same room are chained so they
land in the order they were requested.
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0.0"


class SnapshotStore:
    """Per-room JSON snapshot files in a single directory."""

    FILE_PREFIX = "room-"
    FILE_SUFFIX = ".json"

    def __init__(self, directory: Union[str, os.PathLike]):
        """
        Initialize the store, creating the directory if needed.

        Args:
            directory: Directory that holds the snapshot files.
        """
        self.directory = Path(directory)
        self._pending: dict[str, asyncio.Task] = {}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create snapshot directory {self.directory}: {e}")

    def path_for(self, room_code: str) -> Path:
        return self.directory / f"{self.FILE_PREFIX}{room_code}{self.FILE_SUFFIX}"

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save(self, room_code: str, room_data: dict) -> None:
        """
        Snapshot a room without blocking the caller.

        Args:
            room_code: Code of the room being saved.
            room_data: JSON-serializable room dict (see Room.to_dict).
        """
        try:
            payload = json.dumps(
                {**room_data, "saved_at": time.time(), "version": SNAPSHOT_VERSION},
                indent=2,
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Could not serialize room {room_code}: {e}")
            return

        self._schedule(room_code, self._write, payload)

    def delete(self, room_code: str) -> None:
        """Remove a room's snapshot (missing files are fine)."""
        self._schedule(room_code, self._unlink)

    def _schedule(self, room_code: str, func, *args) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            func(room_code, *args)
            return

        previous = self._pending.get(room_code)
        task = loop.create_task(self._run_after(previous, func, room_code, *args))
        self._pending[room_code] = task
        task.add_done_callback(lambda t, code=room_code: self._forget(code, t))

    async def _run_after(self, previous: Optional[asyncio.Task], func, room_code: str, *args) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        await asyncio.to_thread(func, room_code, *args)

    def _forget(self, room_code: str, task: asyncio.Task) -> None:
        if self._pending.get(room_code) is task:
            del self._pending[room_code]

    async def flush(self) -> None:
        """Wait for every scheduled write to finish (used at shutdown and in tests)."""
        while self._pending:
            await asyncio.wait(list(self._pending.values()))

    def _write(self, room_code: str, payload: str) -> None:
        path = self.path_for(room_code)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, path)
            logger.debug(f"Snapshot saved for room {room_code}")
        except OSError as e:
            logger.error(f"Error saving snapshot for room {room_code}: {e}")

    def _unlink(self, room_code: str) -> None:
        try:
            self.path_for(room_code).unlink()
            logger.debug(f"Snapshot deleted for room {room_code}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error deleting snapshot for room {room_code}: {e}")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def load(self, room_code: str) -> Optional[dict]:
        """
        Read one room's snapshot.

        Returns:
            The saved room dict, or None if missing or unreadable.
        """
        path = self.path_for(room_code)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Error loading snapshot for room {room_code}: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Snapshot for room {room_code} is not a JSON object, skipping")
            return None
        return data

    def load_all(self) -> list[dict]:
        """Read every snapshot in the directory, skipping unreadable files."""
        snapshots = []
        try:
            paths = sorted(self.directory.glob(f"{self.FILE_PREFIX}*{self.FILE_SUFFIX}"))
        except OSError as e:
            logger.error(f"Error listing snapshots in {self.directory}: {e}")
            return snapshots

        for path in paths:
            room_code = path.name[len(self.FILE_PREFIX):-len(self.FILE_SUFFIX)]
            data = self.load(room_code)
            if data is not None:
                snapshots.append(data)
        return snapshots

    def cleanup_old(self, max_age_hours: float = 24) -> int:
        """
        Delete snapshot files not modified within max_age_hours.

        Returns:
            Number of files removed.
        """
        removed = 0
        cutoff = time.time() - max_age_hours * 3600
        try:
            paths = list(self.directory.glob(f"{self.FILE_PREFIX}*{self.FILE_SUFFIX}"))
        except OSError as e:
            logger.error(f"Error listing snapshots in {self.directory}: {e}")
            return removed

        for path in paths:
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
                    logger.info(f"Cleaned up old snapshot: {path.name}")
            except OSError as e:
                logger.error(f"Error cleaning up snapshot {path.name}: {e}")
        return removed
