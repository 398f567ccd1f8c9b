"""Prompt text for digest generation.

The four section headers are shared with sections.parse_sections; the model
is told to emit exactly these literals and the parser looks for exactly
these literals.

Prompt Layout (in order):
    1. TOP HEADLINES: numbered headline digest, or an unavailable notice
    2. TRENDING TOPICS: numbered topics with category grouping instructions,
       or an unavailable notice
    3. MARKET DATA: one of three mutually exclusive framings
       - weekend: crypto only
       - weekday, closed: session recap covering every equity plus crypto
       - open: live framing covering every equity plus crypto
    4. Output format: the four headers with per-section word ceilings
"""

from models.market import CollectedDataBundle, FinanceSnapshot, Quote

NEWS_HEADER = "NEWS HIGHLIGHTS"
TRENDS_HEADER = "TRENDING TOPICS"
MARKET_HEADER = "MARKET OVERVIEW"
OUTLOOK_HEADER = "LOOKING AHEAD"

SECTION_HEADERS = (NEWS_HEADER, TRENDS_HEADER, MARKET_HEADER, OUTLOOK_HEADER)

DEFAULT_WORD_LIMIT = 500
INTERACTIVE_WORD_LIMIT = 300
OUTLOOK_WORD_LIMIT = 300
UNAVAILABLE_WORD_LIMIT = 100
DESCRIPTION_PREVIEW = 100

TREND_CATEGORIES = ("Sports", "Technology", "Entertainment", "Politics", "Other")

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
}

SYSTEM_INSTRUCTIONS = """You are a data analyst creating clear, concise summaries of current news, trends, and market data.

CRITICAL INSTRUCTIONS:
- Only report the specific data provided. Do not infer, speculate, or add context from outside knowledge.
- For percentage changes: positive = "up/gaining/rose", negative = "down/declining/fell".
- Use "slight movement" for changes between -1% and +1%.
- Use dramatic terms like "surged/plunged" only for changes beyond +/-10%; otherwise use neutral descriptors.
- Refer to performance as "today's trading" or "current session".
- In the LOOKING AHEAD section you may discuss what to watch next, framed as possibilities rather than facts.
- Maintain a professional, neutral, fact-based tone."""


def _quote_line(symbol: str, quote: Quote) -> str:
    return f"- {symbol}: ${quote.price_label} ({quote.change_percent_label}%)"


def _news_block(bundle: CollectedDataBundle) -> list[str]:
    if not bundle.has_news:
        return ["TOP HEADLINES: No current headlines available."]

    lines = ["TOP HEADLINES:"]
    for i, headline in enumerate(bundle.news, start=1):
        line = f"{i}. {headline.title}"
        if headline.description:
            line += f" - {headline.description[:DESCRIPTION_PREVIEW]}..."
        if headline.source:
            line += f" ({headline.source})"
        lines.append(line)
    return lines


def _trends_block(bundle: CollectedDataBundle) -> list[str]:
    if not bundle.has_trends:
        return [
            "TRENDING TOPICS: Trending topics data is currently unavailable. "
            "Please focus on news and market analysis."
        ]

    categories = ", ".join(TREND_CATEGORIES)
    lines = [
        "TRENDING TOPICS:",
        f"Group the top trending topics by category ({categories}). "
        "If a topic's category is unclear, place it under 'Other'.",
    ]
    for i, topic in enumerate(bundle.trends, start=1):
        traffic = f" ({topic.traffic})" if topic.traffic and topic.traffic != "N/A" else ""
        lines.append(f"{i}. {topic.title}{traffic}")
    return lines


def _crypto_lines(finance: FinanceSnapshot) -> list[str]:
    return [_quote_line(symbol, quote) for symbol, quote in finance.crypto.items()]


def _stock_lines(finance: FinanceSnapshot) -> list[str]:
    lines = []
    if finance.primary_index is not None:
        lines.append(f"PRIMARY INDEX ({finance.primary_symbol}): "
                     f"${finance.primary_index.price_label} ({finance.primary_index.change_percent_label}%)")
    count = len(finance.equities)
    if count:
        lines.append(f"INDIVIDUAL SYMBOLS (must analyze ALL {count}):")
        lines.extend(_quote_line(symbol, quote) for symbol, quote in finance.equities.items())
    if finance.crypto:
        lines.append("CRYPTO:")
        lines.extend(_crypto_lines(finance))
    return lines


def market_framing(bundle: CollectedDataBundle, is_weekend: bool, is_market_closed: bool) -> str:
    """Name the market-section branch: 'unavailable', 'weekend', 'holiday', 'closed' or 'open'."""
    if not bundle.has_finance:
        return "unavailable"
    if is_weekend:
        return "weekend"
    if is_market_closed:
        return "closed" if bundle.finance.has_stock_data else "holiday"
    return "open"


def _market_block(framing: str, finance: FinanceSnapshot | None) -> list[str]:
    if framing == "unavailable":
        return ["MARKET DATA: Financial data is currently unavailable."]

    count = len(finance.equities)
    if framing == "weekend":
        return ["MARKET DATA: Stock markets are closed for the weekend. Here is the latest crypto data:",
                *_crypto_lines(finance)]
    if framing == "holiday":
        return ["MARKET DATA: Stock markets are closed for a holiday. Here is the latest crypto data:",
                *_crypto_lines(finance)]
    if framing == "closed":
        header = (f"MARKET DATA: Stock markets are closed for the day. Here is today's closing market data. "
                  f"IMPORTANT: Include ALL {count} individual symbols in your {MARKET_HEADER} section, "
                  "not just the indices:")
    else:
        header = (f"MARKET DATA: Markets are currently open. Here is the live market data. "
                  f"IMPORTANT: Include ALL {count} individual symbols in your {MARKET_HEADER} section:")
    return [header, *_stock_lines(finance)]


def _format_block(
    bundle: CollectedDataBundle,
    framing: str,
    word_limit: int,
    language: str,
) -> list[str]:
    count = len(bundle.finance.equities) if bundle.finance else 0

    if bundle.has_news:
        news = f"- {NEWS_HEADER} (max {word_limit} words): one paragraph per story."
    else:
        news = f"- {NEWS_HEADER} (indicate data unavailable, max {UNAVAILABLE_WORD_LIMIT} words)."

    if bundle.has_trends:
        trends = f"- {TRENDS_HEADER} (max {word_limit} words): topics grouped by category."
    else:
        trends = f"- {TRENDS_HEADER} (indicate data unavailable, max {UNAVAILABLE_WORD_LIMIT} words)."

    if framing == "unavailable":
        market = f"- {MARKET_HEADER} (indicate data unavailable, max {UNAVAILABLE_WORD_LIMIT} words)."
    elif framing in ("weekend", "holiday"):
        market = f"- {MARKET_HEADER} focusing on crypto (max {word_limit} words)."
    else:
        market = (f"- {MARKET_HEADER} (max {word_limit} words): you MUST cover ALL {count} individual "
                  "symbols provided above, not just the indices. Group them by performance "
                  "(gainers/losers), mention notable movers, then cover crypto markets.")

    outlook = (f"- {OUTLOOK_HEADER} (max {OUTLOOK_WORD_LIMIT} words): what to watch next "
               "based only on the data above.")

    lines = [
        "Provide a structured summary with exactly these section headers, in this order, "
        "each on its own line:",
        news,
        trends,
        market,
        outlook,
        "Use the header text exactly as written. Use paragraph breaks within sections.",
    ]
    if language != "en":
        name = LANGUAGE_NAMES.get(language, language)
        lines.append(f"Write the section contents in {name}, but keep the four section headers in English.")
    return lines


def build_prompt(
    bundle: CollectedDataBundle,
    is_weekend: bool,
    is_market_closed: bool,
    *,
    word_limit: int = DEFAULT_WORD_LIMIT,
    language: str = "en",
) -> str:
    """Assemble the digest prompt for a collected bundle.

    Deterministic: the same inputs always produce the same text.

    Args:
        bundle: Collected data (any source may be unavailable)
        is_weekend: Saturday/Sunday in exchange time
        is_market_closed: Exchange not in continuous trading
        word_limit: Ceiling for headline, trends and market sections
        language: Output language code

    Returns:
        Prompt text for the user message
    """
    framing = market_framing(bundle, is_weekend, is_market_closed)
    blocks = [
        ["Please analyze the following current data and provide a comprehensive summary."],
        _news_block(bundle),
        _trends_block(bundle),
        _market_block(framing, bundle.finance),
        _format_block(bundle, framing, word_limit, language),
    ]
    return "\n\n".join("\n".join(block) for block in blocks)
