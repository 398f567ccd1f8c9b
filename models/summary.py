"""Digest models: parsed sections, archived records and archive listings.

SummaryRecord is stored on disk with the archive's historical key names
(finance/overall/generatedAt/marketOpen). The aliases below map those keys
onto descriptive attribute names; model_dump(by_alias=True) writes them back.
"""

import datetime as dt
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LANGUAGE = "en"
DEFAULT_COUNTRY = "US"


@dataclass(frozen=True)
class Region:
    """Language/country pair a digest is generated for."""

    language: str = DEFAULT_LANGUAGE
    country: str = DEFAULT_COUNTRY

    def __str__(self) -> str:
        return f"{self.language}-{self.country}"


class SummarySections(BaseModel):
    """The four sections extracted from a model reply (each optional)."""

    news: str | None = None
    trends: str | None = None
    market_overview: str | None = None
    forward_looking: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any((self.news, self.trends, self.market_overview, self.forward_looking))


class SummaryRecord(BaseModel):
    """One generated digest for one (date, language, country) triple."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: dt.date
    language: str = DEFAULT_LANGUAGE
    country: str = DEFAULT_COUNTRY
    news: str = ""
    trends: str = ""
    market_overview: str = Field(default="", alias="finance")
    forward_looking: str = Field(default="", alias="overall")
    generated_at: dt.datetime | None = Field(default=None, alias="generatedAt")
    market_was_open: bool = Field(default=False, alias="marketOpen")
    automated: bool = False

    @field_validator("generated_at")
    @classmethod
    def _assume_utc(cls, value: dt.datetime | None) -> dt.datetime | None:
        """Legacy archives wrote naive timestamps; they were UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value

    @property
    def region(self) -> Region:
        return Region(self.language, self.country)

    @property
    def has_content(self) -> bool:
        return any((self.news, self.trends, self.market_overview, self.forward_looking))

    @classmethod
    def from_sections(
        cls,
        sections: SummarySections,
        day: dt.date,
        region: Region,
        generated_at: dt.datetime,
        automated: bool,
    ) -> "SummaryRecord":
        """Build a record from parsed sections; missing sections become empty strings."""
        return cls(
            date=day,
            language=region.language,
            country=region.country,
            news=sections.news or "",
            trends=sections.trends or "",
            market_overview=sections.market_overview or "",
            forward_looking=sections.forward_looking or "",
            generated_at=generated_at,
            automated=automated,
        )

    def to_archive(self) -> dict:
        """Serialize with archive key names (date is the bucket key, not a field)."""
        payload = self.model_dump(mode="json", by_alias=True, exclude={"date"})
        payload["timestamp"] = payload["generatedAt"]
        return payload


class ArchiveEntry(BaseModel):
    """Flattened archive listing row used for history browsing."""

    date: dt.date
    language: str
    country: str
    generated_at: dt.datetime | None = None
    automated: bool = False
    market_was_open: bool = False
    has_content: bool = False
