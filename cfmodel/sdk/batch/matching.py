"""Provider -> market specialty matching.

Matching order:
1. Exact: normalized provider specialty equals a normalized market specialty
2. Synonym: synonym map lookup (normalized, raw, or lower-cased key)
3. Missing

Market rows with any missing or non-finite percentile band are skipped.

Proximity suggestions (suggest_specialty_mappings) feed the synonym map;
they are never applied automatically.
"""

import logging
import math
import re
from typing import Dict, Iterable, List, Optional

from ..schemas import MarketRow, ProviderRow
from .schemas import MatchMarketResult

logger = logging.getLogger(__name__)

# Minimum similarity to suggest a mapping
SUGGEST_THRESHOLD = 0.45
# Levenshtein ratio only considered for short strings
LEVENSHTEIN_MAX_LEN = 40


def normalize_specialty_key(s: Optional[str]) -> str:
    """Trim, lower-case, drop punctuation, collapse whitespace."""
    if not isinstance(s, str):
        return ""
    s = s.strip().lower()
    s = re.sub(r"[^\w\s]", "", s)
    return re.sub(r"\s+", " ", s).strip()


def is_market_row_valid(market: MarketRow) -> bool:
    """True if every TCC/WRVU/CF band is present and finite."""
    for metric in ("tcc", "wrvu", "cf"):
        for value in market.bands(metric):
            if value is None or not math.isfinite(value):
                return False
    return True


def match_market_row(
    provider: ProviderRow,
    market_rows: Iterable[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
) -> MatchMarketResult:
    """Match a provider to a market row by specialty.

    Args:
        provider: Provider to match
        market_rows: Candidate benchmark rows
        synonym_map: provider specialty -> market specialty

    Returns:
        MatchMarketResult (market_row None when Missing)
    """
    synonym_map = synonym_map or {}
    raw_specialty = (provider.specialty or "").strip()
    if not raw_specialty:
        return MatchMarketResult(status="Missing")

    normalized = normalize_specialty_key(raw_specialty)
    valid_markets = [m for m in market_rows if is_market_row_valid(m)]

    for market in valid_markets:
        key = normalize_specialty_key(market.specialty)
        if key and key == normalized:
            return MatchMarketResult(market_row=market, status="Exact", matched_key=market.specialty)

    target = (
        synonym_map.get(normalized)
        or synonym_map.get(raw_specialty)
        or synonym_map.get(raw_specialty.lower())
    )
    if target:
        target_key = normalize_specialty_key(target)
        for market in valid_markets:
            if normalize_specialty_key(market.specialty) == target_key:
                return MatchMarketResult(market_row=market, status="Synonym", matched_key=market.specialty)
        logger.debug(f"synonym '{raw_specialty}' -> '{target}' has no valid market row")

    return MatchMarketResult(status="Missing")


def _normalize_for_similarity(s: str) -> str:
    s = re.sub(r"\s+", " ", s.lower().strip())
    return re.sub(r"[^\w\s-]", "", s)


def _token_set(s: str) -> set:
    tokens = re.split(r"\s*[-_,/]\s*|\s+", _normalize_for_similarity(s))
    return {t for t in tokens if t}


def _jaccard(a: set, b: set) -> float:
    if not a and not b:
        return 1.0
    inter = len(a & b)
    union = len(a) + len(b) - inter
    return inter / union if union else 0.0


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            curr.append(min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost))
        prev = curr
    return prev[-1]


def specialty_similarity(provider: str, market: str) -> float:
    """Similarity score in [0, 1]; higher is a better match."""
    p = _normalize_for_similarity(provider)
    m = _normalize_for_similarity(market)
    if p == m:
        return 1.0
    if not p or not m:
        return 0.0
    if p in m or m in p:
        return 0.92
    jaccard = _jaccard(_token_set(provider), _token_set(market))
    max_len = max(len(p), len(m))
    lev_ratio = 1 - levenshtein(p, m) / max_len if max_len <= LEVENSHTEIN_MAX_LEN else 0.0
    return max(jaccard, lev_ratio * 0.85)


def suggest_specialty_mappings(
    provider_specialties: List[str],
    market_specialties: List[str],
) -> Dict[str, str]:
    """Suggest provider -> market specialty mappings by proximity.

    Only scores >= SUGGEST_THRESHOLD are suggested, and each market specialty
    is suggested for at most one provider specialty (best score wins).
    """
    if not market_specialties:
        return {}

    candidates = []
    for prov in provider_specialties:
        best_market, best_score = "", 0.0
        for market in market_specialties:
            score = specialty_similarity(prov, market)
            if score > best_score and score >= SUGGEST_THRESHOLD:
                best_market, best_score = market, score
        candidates.append((prov, best_market, best_score))

    # Stronger matches claim their market first
    candidates.sort(key=lambda c: c[2], reverse=True)

    suggestions = {}
    used = set()
    for prov, market, _score in candidates:
        if market and market not in used:
            suggestions[prov] = market
            used.add(market)
    return suggestions
