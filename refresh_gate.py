"""Once-per-day quota for manual refreshes.

Each client (identified by the caller's address) may trigger one
successful manual refresh per exchange-local day. The last-refreshed date
per client is kept in a small JSON file so the quota survives restarts.
"""

import asyncio
import json
import logging
from datetime import date
from pathlib import Path

from store import parse_date_key, write_json_atomic

logger = logging.getLogger(__name__)


class RefreshGate:
    """Persisted per-client record of the last manual refresh date.

    Example:
        >>> gate = RefreshGate(Path("data/refresh-markers.json"))
        >>> await gate.allowed("10.0.0.5", today)
        True
        >>> await gate.mark("10.0.0.5", today)
        >>> await gate.allowed("10.0.0.5", today)
        False
    """

    def __init__(self, path: Path, bypass: bool = False):
        """Initialize the gate.

        Args:
            path: Marker file location
            bypass: Allow every request (development mode)
        """
        self.path = Path(path)
        self.bypass = bypass
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Refresh markers unreadable, resetting | path=%s error=%s", self.path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    async def last_refreshed(self, client_id: str) -> date | None:
        """Date of the client's last successful manual refresh, if any."""
        value = self._read().get(client_id)
        return parse_date_key(value) if value else None

    async def allowed(self, client_id: str, today: date) -> bool:
        """True if the client has not refreshed today (or the gate is bypassed)."""
        if self.bypass:
            return True
        return await self.last_refreshed(client_id) != today

    async def mark(self, client_id: str, today: date) -> None:
        """Record a successful refresh; markers from earlier days are pruned."""
        async with self._lock:
            markers = {
                client: day for client, day in self._read().items()
                if day == today.isoformat()
            }
            markers[client_id] = today.isoformat()
            try:
                write_json_atomic(self.path, markers)
            except OSError as e:
                logger.error("Refresh marker write failed | path=%s error=%s", self.path, e, exc_info=True)
