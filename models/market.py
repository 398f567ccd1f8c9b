"""Collected-data models for one generation attempt.

These models describe what the collectors hand to the prompt builder.
None of them are persisted.

Availability Convention:
    A collector that failed (network error, bad payload) yields None for its
    field in CollectedDataBundle. A collector that succeeded but found
    nothing yields an empty list. The orchestrator relies on that
    distinction only through has_core_data.
"""

from enum import Enum

from pydantic import BaseModel, Field


class Headline(BaseModel):
    """A single news headline."""

    title: str = Field(description="Headline text")
    description: str = Field(default="", description="Short description or lede")
    source: str = Field(default="", description="Publisher or author")


class TrendingTopic(BaseModel):
    """A trending search topic."""

    title: str = Field(description="Search query")
    traffic: str = Field(default="N/A", description="Formatted traffic, e.g. '200K+'")


class SymbolClass(str, Enum):
    """Bucket a quoted symbol is reported under."""

    PRIMARY_INDEX = "primary_index"
    CRYPTO = "crypto"
    EQUITY = "equity"


class Quote(BaseModel):
    """Latest price information for one symbol."""

    price: float | None = Field(default=None, description="Last traded price")
    change: float | None = Field(default=None, description="Absolute change vs previous close")
    change_percent: float | None = Field(default=None, description="Percent change vs previous close")
    as_of: str = Field(default="Current", description="Label for the quote's timeframe")

    @staticmethod
    def _fmt(value: float | None) -> str:
        return f"{value:.2f}" if value is not None else "N/A"

    @property
    def price_label(self) -> str:
        return self._fmt(self.price)

    @property
    def change_label(self) -> str:
        return self._fmt(self.change)

    @property
    def change_percent_label(self) -> str:
        return self._fmt(self.change_percent)


class FinanceSnapshot(BaseModel):
    """Quotes for one collection pass, classified by symbol bucket.

    Attributes:
        primary_index: Quote for the configured headline index, if fetched
        equities: Non-crypto, non-primary symbols (stocks, other indices, FX)
        crypto: USD-quoted crypto pairs
        errors: Per-symbol failure messages; never aggregated into a hard failure
    """

    primary_index: Quote | None = None
    primary_symbol: str = ""
    equities: dict[str, Quote] = Field(default_factory=dict)
    crypto: dict[str, Quote] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def quote_count(self) -> int:
        """Number of successfully fetched quotes."""
        return len(self.equities) + len(self.crypto) + (1 if self.primary_index else 0)

    @property
    def is_empty(self) -> bool:
        return self.quote_count == 0

    @property
    def has_stock_data(self) -> bool:
        """True when anything besides crypto was fetched."""
        return self.primary_index is not None or bool(self.equities)


class CollectedDataBundle(BaseModel):
    """Everything the collectors gathered for one generation attempt."""

    news: list[Headline] | None = None
    trends: list[TrendingTopic] | None = None
    finance: FinanceSnapshot | None = None

    @property
    def has_news(self) -> bool:
        return bool(self.news)

    @property
    def has_trends(self) -> bool:
        return bool(self.trends)

    @property
    def has_finance(self) -> bool:
        return self.finance is not None and not self.finance.is_empty

    @property
    def has_core_data(self) -> bool:
        """News or finance must be present; trends alone never suffice."""
        return self.has_news or self.has_finance
