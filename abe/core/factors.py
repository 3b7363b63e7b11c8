"""Factor taxonomy and keyword classifier.

A *factor* is a thematic cluster ("Fed policy", "crypto", "sports") used to
spot correlated exposure between contracts that are otherwise unrelated and
to cap concentration.  Classification is deliberately dumb: case-insensitive
keyword matching over whatever text the adapter has (title,
event ticker, tags).  A text may hit several factors; it falls into
``"other"`` only when nothing matches.

Keywords match as whole words with an optional plural ``s`` so that ``eth``
does not fire on "whether" and ``fed`` does not fire on "federation".
Kalshi event tickers are the exception: they are matched by substring.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from abe.core.portfolio_types import OTHER_FACTOR


@dataclass(frozen=True)
class Factor:
    id: str
    name: str
    description: str = ""


FACTORS: Tuple[Factor, ...] = (
    Factor("republican_performance", "Republican / GOP performance",
           "Elections and outcomes favoring Republicans"),
    Factor("democrat_performance", "Democrat performance",
           "Elections and outcomes favoring Democrats"),
    Factor("presidency", "Presidency", "Presidential election and administration"),
    Factor("congress", "Congress", "House and Senate outcomes"),
    Factor("fed_policy", "Fed / monetary policy", "Rates, inflation, Fed decisions"),
    Factor("inflation", "Inflation", "CPI, inflation metrics"),
    Factor("sports", "Sports", "Sports outcomes and awards"),
    Factor("crypto", "Crypto", "Crypto prices and adoption"),
    Factor(OTHER_FACTOR, "Other", "Uncategorized"),
)

_FACTORS_BY_ID: Dict[str, Factor] = {f.id: f for f in FACTORS}

# Ordered like FACTORS so the output order is stable.
_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("republican_performance", ("republican", "gop", "trump", "maga", "conservative")),
    ("democrat_performance", ("democrat", "democratic", "biden", "progressive")),
    ("presidency", ("president", "presidential", "presidency", "white house", "potus")),
    ("congress", ("senate", "congress", "house of representatives", "house election")),
    ("fed_policy", ("fed", "federal reserve", "interest rate", "rate cut", "rate hike", "fomc")),
    ("inflation", ("inflation", "cpi", "pce")),
    ("sports", (
        "nfl", "nba", "mlb", "nhl", "ncaa", "super bowl", "world series",
        "championship", "mvp", "sports",
    )),
    ("crypto", ("bitcoin", "crypto", "cryptocurrency", "ethereum", "btc", "eth")),
)


def _compile(keywords: Iterable[str]) -> Pattern[str]:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})s?\b")


_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = tuple(
    (factor_id, _compile(words)) for factor_id, words in _KEYWORDS
)


def classify_text(text: Optional[str]) -> List[str]:
    """Return the factor ids whose keywords appear in ``text``.

    Examples::

        classify_text("Will the Fed cut rates in March?")  →  ["fed_policy"]
        classify_text("Trump wins presidential election")  →  ["republican_performance", "presidency"]
        classify_text("Will it snow in Denver?")           →  ["other"]
        classify_text("")                                   →  ["other"]
    """
    lowered = (text or "").lower()
    if not lowered.strip():
        return [OTHER_FACTOR]
    matched = [factor_id for factor_id, pattern in _PATTERNS if pattern.search(lowered)]
    return matched or [OTHER_FACTOR]


def classify_parts(parts: Sequence[Optional[str]]) -> List[str]:
    """Classify the space-joined non-empty ``parts``."""
    return classify_text(" ".join(p for p in parts if p))


def classify_ticker(ticker: Optional[str]) -> List[str]:
    """Return the factor ids whose single-word keywords occur anywhere in ``ticker``.

    Tickers run words together (``KXFEDDECISION-25DEC``), so this is a plain
    substring match with no word boundaries.  Empty list when nothing hits.
    """
    lowered = (ticker or "").lower()
    if not lowered:
        return []
    return [
        factor_id for factor_id, words in _KEYWORDS
        if any(" " not in w and w in lowered for w in words)
    ]


def factor_ids_for_kalshi_market(
    title: Optional[str] = None,
    event_ticker: Optional[str] = None,
) -> List[str]:
    """Factor ids for a Kalshi market from its title and event ticker.

    The title is matched on whole words, the ticker by substring.
    """
    hits = set(classify_ticker(event_ticker))
    hits.update(f for f in classify_text(title) if f != OTHER_FACTOR)
    matched = [factor_id for factor_id, _ in _KEYWORDS if factor_id in hits]
    return matched or [OTHER_FACTOR]


def factor_ids_for_polymarket_market(
    question: Optional[str] = None,
    event_title: Optional[str] = None,
    tags: Optional[Sequence[Dict[str, str]]] = None,
) -> List[str]:
    """Factor ids for a Polymarket market from question, event title and tags.

    ``tags`` items are dicts with optional ``label`` and ``slug`` keys, as
    returned by the Gamma API.
    """
    parts: List[Optional[str]] = [question, event_title]
    for tag in tags or []:
        parts.append(tag.get("label"))
        slug = tag.get("slug")
        if slug:
            parts.append(slug.replace("-", " "))
    return classify_parts(parts)


def get_factor(factor_id: str) -> Optional[Factor]:
    return _FACTORS_BY_ID.get(factor_id)


def factor_name(factor_id: str) -> str:
    """Display name for ``factor_id``; unknown ids (e.g. ``game-3``) echo back."""
    factor = _FACTORS_BY_ID.get(factor_id)
    return factor.name if factor else factor_id
