"""Pydantic models for the daily digest service.

Collected data (models.market):
    Headline, TrendingTopic: normalized collector records.
    Quote, FinanceSnapshot: classified market quotes with per-symbol errors.
    CollectedDataBundle: everything gathered for one generation attempt.

Digest data (models.summary):
    SummarySections: the four sections parsed from a model reply.
    SummaryRecord: one archived digest for a (date, language, country) triple.
    ArchiveEntry: flattened row for archive browsing.
    Region: language/country pair.

Example:
    >>> from models import CollectedDataBundle, Headline
    >>> bundle = CollectedDataBundle(news=[Headline(title="...")])
    >>> bundle.has_core_data
    True
"""

from models.market import (
    CollectedDataBundle,
    FinanceSnapshot,
    Headline,
    Quote,
    SymbolClass,
    TrendingTopic,
)
from models.summary import ArchiveEntry, Region, SummaryRecord, SummarySections

__all__ = [
    "CollectedDataBundle",
    "FinanceSnapshot",
    "Headline",
    "Quote",
    "SymbolClass",
    "TrendingTopic",
    "ArchiveEntry",
    "Region",
    "SummaryRecord",
    "SummarySections",
]
