"""Two-tier cache: in-memory map mirrored to a JSON snapshot file."""

import json
import os
import time
from pathlib import Path
from typing import Any, Callable

from stonks.services.errors import CacheCorruptionError
from stonks.utils.logger import StructuredLogger


def chart_key(kind: str, symbol: str, lookback_days: int) -> str:
    """Key of a price-series entry, e.g. ``crypto-BTC-7``."""
    return f"{kind}-{symbol}-{lookback_days}"


def detail_key(provider_id: str) -> str:
    """Key of a crypto detail entry, e.g. ``detail-bitcoin``."""
    return f"detail-{provider_id}"


class CacheStore:
    """
    In-memory key -> entry map backed by a durable JSON snapshot.

    Each entry is ``{"payload": ..., "stored_at": epoch_millis}``. The snapshot
    is read once at construction and rewritten whole after every ``set``.
    Entries are never evicted; staleness is decided by ``is_valid`` at read
    time against the TTL of the caller's choosing.
    """

    def __init__(self, file_path: str | Path, clock: Callable[[], float] = time.time):
        """
        Initialize the cache and load the snapshot.

        Args:
            file_path: Location of the JSON snapshot
            clock: Returns the current wall-clock time in seconds
        """
        self.file_path = Path(file_path)
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self.logger = StructuredLogger("CacheStore")
        self.load()

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> int:
        """
        Replace the in-memory map with the snapshot contents.

        A missing file yields an empty cache. An unreadable or malformed
        snapshot is logged and also yields an empty cache.

        Returns:
            Number of entries loaded
        """
        self._entries = {}
        if not self.file_path.exists():
            return 0

        try:
            data = self._read_snapshot()
        except CacheCorruptionError as e:
            self.logger.error(
                "Error loading cache file, starting with an empty cache",
                context={"file": str(self.file_path)},
                exception=e,
            )
            return 0

        self._entries = data
        self.logger.info(
            f"Loaded {len(data)} entries from cache file",
            context={"file": str(self.file_path), "entries": len(data)},
        )
        return len(data)

    def _read_snapshot(self) -> dict[str, dict[str, Any]]:
        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorruptionError(f"Unreadable cache snapshot: {e}") from e

        if not isinstance(data, dict):
            raise CacheCorruptionError("Cache snapshot is not a JSON object")

        return {key: entry for key, entry in data.items() if isinstance(entry, dict)}

    def save(self) -> bool:
        """
        Rewrite the snapshot with the whole in-memory map.

        Failures are logged; the in-memory map stays authoritative.

        Returns:
            True if the snapshot was written
        """
        tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._entries, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.file_path)
            return True
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(
                "Error saving cache file",
                context={"file": str(self.file_path), "entries": len(self._entries)},
                exception=e,
            )
            return False

    def get(self, key: str) -> Any | None:
        """Payload stored under ``key`` regardless of age, or None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.get("payload")

    def stored_at(self, key: str) -> int | None:
        entry = self._entries.get(key)
        return entry.get("stored_at") if entry else None

    def set(self, key: str, payload: Any) -> None:
        """Store ``payload`` under ``key`` stamped with the current time and persist."""
        self._entries[key] = {"payload": payload, "stored_at": self.now_ms()}
        self.save()

    def is_valid(self, key: str, ttl_seconds: float) -> bool:
        """
        Check whether the entry under ``key`` is younger than ``ttl_seconds``.

        Returns:
            False for an absent key or an entry without a timestamp,
            else ``now - stored_at < ttl``
        """
        stored_at = self.stored_at(key)
        if not isinstance(stored_at, (int, float)) or isinstance(stored_at, bool):
            return False
        return self.now_ms() - stored_at < ttl_seconds * 1000

    def __len__(self) -> int:
        return len(self._entries)
