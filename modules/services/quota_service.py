"""Persisted daily generation quota."""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from config.settings import MAX_GENERATIONS_PER_DAY
from modules.errors import StorageError
from modules.services.storage_service import Storage

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY = "generationRateLimit"


@dataclass(slots=True)
class QuotaRecord:
    """Generation count for one local calendar day."""

    date: str  # YYYY-MM-DD
    count: int = 0


def _local_today() -> datetime.date:
    return datetime.date.today()


class QuotaTracker:
    """Gate and count generations per day.

    The record is re-read on every call. A record for any day other than today,
    or one that cannot be parsed, is replaced by a fresh zero-count record.
    Storage failures are logged and never raised.
    """

    def __init__(
        self,
        storage: Storage,
        max_per_day: int = MAX_GENERATIONS_PER_DAY,
        today: Callable[[], datetime.date] = _local_today,
        key: str = RATE_LIMIT_KEY,
    ) -> None:
        self.storage = storage
        self.max_per_day = max_per_day
        self._today = today
        self.key = key

    def _today_string(self) -> str:
        return self._today().isoformat()

    def _parse(self, raw: str, today: str) -> Optional[QuotaRecord]:
        try:
            data: Any = json.loads(raw)
        except ValueError:
            logger.warning("Corrupted quota record, starting fresh: %r", raw[:80])
            return None

        if not isinstance(data, dict):
            logger.warning("Quota record has unexpected shape, starting fresh.")
            return None
        date = data.get("date")
        count = data.get("count")
        if not isinstance(date, str) or isinstance(count, bool) or not isinstance(count, int) or count < 0:
            logger.warning("Quota record has invalid fields, starting fresh: %r", data)
            return None
        if date != today:
            return None
        return QuotaRecord(date=date, count=min(count, self.max_per_day))

    def _read(self) -> QuotaRecord:
        today = self._today_string()
        try:
            raw = self.storage.get(self.key)
        except StorageError as exc:
            logger.error("Failed to read quota record: %s", exc)
            raw = None
        if raw is not None:
            record = self._parse(raw, today)
            if record is not None:
                return record
        return QuotaRecord(date=today, count=0)

    def _write(self, record: QuotaRecord) -> None:
        try:
            self.storage.set(self.key, json.dumps(asdict(record)))
        except StorageError as exc:
            logger.error("Failed to persist quota record: %s", exc)

    def snapshot(self) -> QuotaRecord:
        """Return today's record without modifying it."""
        return self._read()

    def check_available(self) -> bool:
        return self._read().count < self.max_per_day

    def consume(self) -> None:
        """Count one generation; no-op once the ceiling is reached."""
        record = self._read()
        if record.count >= self.max_per_day:
            logger.warning("Quota consume ignored: daily ceiling %d reached.", self.max_per_day)
            return
        record.count += 1
        self._write(record)
        logger.info("Generation %d/%d recorded for %s", record.count, self.max_per_day, record.date)

    def remaining(self) -> int:
        return max(0, self.max_per_day - self._read().count)
