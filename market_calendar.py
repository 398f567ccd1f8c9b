"""US equity market calendar.

Pure functions deciding whether the reference exchange (NYSE/Nasdaq) is in
its continuous trading session at a given instant. No network access, no
state; safe to call from the scheduler, the prompt builder and the store.

Session Rules (evaluated in order):
    1. USD-quoted crypto pairs (symbol ending in '-USD') always trade.
    2. The instant is converted to America/New_York.
    3. Saturdays and Sundays are closed.
    4. Exchange holidays are closed (see market_holidays).
    5. Otherwise the session runs 09:30 <= local time < 16:00.
"""

from datetime import date, datetime, time, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

EXCHANGE_TZ = ZoneInfo("America/New_York")
SESSION_OPEN = time(9, 30)
SESSION_CLOSE = time(16, 0)
CRYPTO_SUFFIX = "-USD"

_MONDAY, _THURSDAY, _SATURDAY, _SUNDAY = 0, 3, 5, 6


def is_crypto_symbol(symbol: str | None) -> bool:
    """True for USD-quoted crypto pairs such as 'BTC-USD'."""
    return bool(symbol) and symbol.upper().endswith(CRYPTO_SUFFIX)


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """n-th (1-based) occurrence of weekday in a month."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def _last_weekday(year: int, month: int, weekday: int) -> date:
    """Last occurrence of weekday in a month."""
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last = next_month - timedelta(days=1)
    return last - timedelta(days=(last.weekday() - weekday) % 7)


def _observed(day: date) -> date:
    """Saturday holidays are observed Friday, Sunday holidays Monday."""
    if day.weekday() == _SATURDAY:
        return day - timedelta(days=1)
    if day.weekday() == _SUNDAY:
        return day + timedelta(days=1)
    return day


@lru_cache(maxsize=64)
def market_holidays(year: int) -> frozenset[date]:
    """All full-day exchange closures for a calendar year.

    New Year's Day and Juneteenth are taken on their calendar date only;
    Independence Day and Christmas also close on their weekend observance.
    """
    independence = date(year, 7, 4)
    christmas = date(year, 12, 25)
    return frozenset({
        date(year, 1, 1),                          # New Year's Day
        _nth_weekday(year, 1, _MONDAY, 3),         # Martin Luther King Jr. Day
        _nth_weekday(year, 2, _MONDAY, 3),         # Presidents Day
        easter_sunday(year) - timedelta(days=2),   # Good Friday
        _last_weekday(year, 5, _MONDAY),           # Memorial Day
        date(year, 6, 19),                         # Juneteenth
        independence,
        _observed(independence),
        _nth_weekday(year, 9, _MONDAY, 1),         # Labor Day
        _nth_weekday(year, 11, _THURSDAY, 4),      # Thanksgiving
        christmas,
        _observed(christmas),
    })


def is_market_holiday(day: date) -> bool:
    """True if the exchange is closed all day for a holiday."""
    return day in market_holidays(day.year)


def to_exchange_time(instant: datetime) -> datetime:
    """Convert an instant to exchange local time (naive datetimes are taken as UTC)."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=ZoneInfo("UTC"))
    return instant.astimezone(EXCHANGE_TZ)


def is_weekend(instant: datetime) -> bool:
    """True on Saturday or Sunday in exchange local time."""
    return to_exchange_time(instant).weekday() >= _SATURDAY


def is_market_open(instant: datetime, symbol: str | None = None) -> bool:
    """Whether the reference exchange is in continuous trading at an instant.

    Args:
        instant: Point in time (aware; naive values are treated as UTC)
        symbol: Optional instrument; crypto pairs are always open

    Returns:
        True if trading, False otherwise
    """
    if is_crypto_symbol(symbol):
        return True

    local = to_exchange_time(instant)
    if local.weekday() >= _SATURDAY:
        return False
    if is_market_holiday(local.date()):
        return False
    return SESSION_OPEN <= local.time() < SESSION_CLOSE
