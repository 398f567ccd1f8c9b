"""Split a model reply into the four digest sections.

Headers are matched case-sensitively against the literals in agents.prompts.
Accepted spellings for a header H:

    **H**   **H:**   **H**:   H:   H

each optionally preceded by markdown '#' marks. A section body runs from the
end of its header to the next header of any kind, a horizontal rule line
('---'), or the end of the text, and is trimmed. Only the first occurrence
of each header is used. A header that never appears yields None.
"""

import re

from agents.prompts import MARKET_HEADER, NEWS_HEADER, OUTLOOK_HEADER, TRENDS_HEADER
from models.summary import SummarySections

_FIELDS = (
    ("news", NEWS_HEADER),
    ("trends", TRENDS_HEADER),
    ("market_overview", MARKET_HEADER),
    ("forward_looking", OUTLOOK_HEADER),
)


def _header_pattern(header: str) -> str:
    h = re.escape(header)
    return (
        r"(?:^[ \t]*#+[ \t]*)?"
        rf"(?:\*\*{h}:?\*\*:?|(?<![A-Za-z]){h}(?![A-Za-z]):?)"
    )


_HEADER_PATTERNS = {header: re.compile(_header_pattern(header), re.MULTILINE) for _, header in _FIELDS}
_ANY_HEADER = re.compile("|".join(_header_pattern(header) for _, header in _FIELDS), re.MULTILINE)
_RULE = re.compile(r"^[ \t]*-{3,}[ \t]*$", re.MULTILINE)


def parse_sections(text: str | None) -> SummarySections:
    """Extract the four sections from reply text.

    Args:
        text: Model reply (may be empty or None)

    Returns:
        SummarySections with None for every header not found
    """
    if not text:
        return SummarySections()

    boundaries = sorted(
        [m.start() for m in _ANY_HEADER.finditer(text)]
        + [m.start() for m in _RULE.finditer(text)]
    )

    found: dict[str, str] = {}
    for field, header in _FIELDS:
        match = _HEADER_PATTERNS[header].search(text)
        if not match:
            continue
        end = next((b for b in boundaries if b >= match.end()), len(text))
        found[field] = text[match.end():end].strip()

    return SummarySections(**found)
