"""JSON archive of generated digests.

The archive is one JSON object keyed by ISO date string. Each value (a
"bucket") holds the digests for that date in one of three shapes:

    [ {..., "language": "en", "country": "US"}, ... ]   region list
    { "news": ..., "finance": ... }                      legacy single (en, US)
    { ..., "language": "fr", "country": "FR" }           tagged single

Buckets are normalized to list[SummaryRecord] as soon as they are read, so
no caller ever branches on shape. Writes rewrite only the touched bucket,
always in list shape, replacing the item for the saved region and keeping
every other item exactly as read. Other buckets are untouched.

Durability:
    Reads fail soft: a missing or corrupt file is an empty archive.
    Saves fail hard: a corrupt or unreadable file is left alone and the
    save reports failure, so no earlier digest is lost.
    Writes are serialized by an asyncio.Lock (read-modify-write) and land
    atomically via a temp file in the same directory plus os.replace().
"""

import asyncio
import json
import logging
import os
import re
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from market_calendar import is_market_open
from models.summary import DEFAULT_COUNTRY, DEFAULT_LANGUAGE, ArchiveEntry, SummaryRecord

logger = logging.getLogger(__name__)

_DATE_KEY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_key(key: str) -> date | None:
    """Parse an archive key, returning None for anything but YYYY-MM-DD."""
    if not _DATE_KEY.match(key):
        return None
    try:
        return date.fromisoformat(key)
    except ValueError:
        return None


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temp file beside path, then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def _record_from_raw(day: date, raw: Any) -> SummaryRecord | None:
    if not isinstance(raw, dict):
        return None
    data = {key: value for key, value in raw.items() if value is not None}
    # Older writers stamped generatedAt as exchange wall-clock with a UTC suffix;
    # timestamp is the true instant.
    if "timestamp" in data:
        data["generatedAt"] = data["timestamp"]
    data["date"] = day
    try:
        return SummaryRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("Skipping malformed archive record | date=%s error=%s", day, e)
        return None


def normalize_bucket(day: date, raw: Any) -> list[SummaryRecord]:
    """Convert any on-disk bucket shape into a list of records."""
    items = raw if isinstance(raw, list) else [raw]
    records = []
    for item in items:
        record = _record_from_raw(day, item)
        if record is not None:
            records.append(record)
    return records


def _raw_region(raw: Any) -> tuple[str, str] | None:
    """(language, country) of an on-disk item, or None if it is not an object."""
    if not isinstance(raw, dict):
        return None
    return (raw.get("language") or DEFAULT_LANGUAGE, raw.get("country") or DEFAULT_COUNTRY)


def _find(records: list[SummaryRecord], language: str, country: str) -> SummaryRecord | None:
    for record in records:
        if record.language == language and record.country == country:
            return record
    return None


class ArchiveUnreadable(Exception):
    """The archive file exists but cannot be read as a JSON object."""


class SummaryStore:
    """File-backed archive of digests keyed by (date, language, country).

    Example:
        >>> store = SummaryStore(Path("data/daily-summaries.json"))
        >>> await store.save(record)
        True
        >>> await store.load(record.date, "en", "US")
        SummaryRecord(...)
    """

    def __init__(
        self,
        path: Path,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize the store.

        Args:
            path: Archive file location (created on first save)
            clock: Returns the current instant; stamps market_was_open on save
        """
        self.path = Path(path)
        self._clock = clock
        self._lock = asyncio.Lock()

    def _read_strict(self) -> dict[str, Any]:
        """Read the archive object; a missing file is an empty archive.

        Raises:
            ArchiveUnreadable: If the file exists but is unreadable, not JSON,
                or not a JSON object
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise ArchiveUnreadable(f"unreadable: {e}") from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ArchiveUnreadable(f"corrupt: {e}") from e
        if not isinstance(data, dict):
            raise ArchiveUnreadable("not a JSON object")
        return data

    def _read_raw(self) -> dict[str, Any]:
        """Read the archive object; any failure means an empty archive."""
        try:
            return self._read_strict()
        except ArchiveUnreadable as e:
            logger.warning("Archive %s, treating as empty | path=%s", e, self.path)
            return {}

    def _write_raw(self, data: dict[str, Any]) -> None:
        write_json_atomic(self.path, data)

    async def save(self, record: SummaryRecord) -> bool:
        """Insert or replace the record for its (date, language, country).

        Items for other regions on the same date are written back exactly as
        read, even ones that do not parse as records. An existing archive that
        cannot be read is never overwritten.

        Returns:
            True if written, False if the archive is unreadable or the write
            failed (both logged)
        """
        record = record.model_copy(update={"market_was_open": is_market_open(self._clock())})
        key = record.date.isoformat()
        region = (record.language, record.country)

        async with self._lock:
            try:
                data = self._read_strict()
            except ArchiveUnreadable as e:
                logger.error("Archive %s, refusing to overwrite | path=%s date=%s", e, self.path, key)
                return False

            raw = data.get(key)
            items = [] if raw is None else raw if isinstance(raw, list) else [raw]
            bucket = [item for item in items if _raw_region(item) != region]
            bucket.append(record.to_archive())
            data[key] = bucket
            try:
                self._write_raw(data)
            except Exception as e:
                logger.error("Archive write failed | path=%s date=%s error=%s", self.path, key, e, exc_info=True)
                return False

        logger.info(
            "Summary saved | date=%s region=%s automated=%s records_for_date=%d",
            key, record.region, record.automated, len(bucket),
        )
        return True

    async def load(
        self,
        day: date,
        language: str = DEFAULT_LANGUAGE,
        country: str = DEFAULT_COUNTRY,
    ) -> SummaryRecord | None:
        """Return the record for (day, language, country), or None."""
        data = self._read_raw()
        raw = data.get(day.isoformat())
        if raw is None:
            return None
        return _find(normalize_bucket(day, raw), language, country)

    async def list_all(self) -> list[ArchiveEntry]:
        """Flatten every bucket into listing rows, newest date first.

        Keys that are not valid calendar dates are skipped.
        """
        entries: list[ArchiveEntry] = []
        for key, raw in self._read_raw().items():
            day = parse_date_key(key)
            if day is None:
                logger.debug("Skipping invalid archive key | key=%s", key)
                continue
            for record in normalize_bucket(day, raw):
                entries.append(ArchiveEntry(
                    date=day,
                    language=record.language,
                    country=record.country,
                    generated_at=record.generated_at,
                    automated=record.automated,
                    market_was_open=record.market_was_open,
                    has_content=record.has_content,
                ))
        entries.sort(key=lambda entry: entry.date, reverse=True)
        return entries
