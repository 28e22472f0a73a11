"""
Best-effort matching of a saved business against address-search hits.

Used by the opportunistic self-rating refresh: there is no unique key shared
with the places provider, so a hit is accepted only when its name is similar
enough and, if both sides have coordinates, it is physically close.
"""

import re
import unicodedata
from difflib import SequenceMatcher
from typing import List, Optional

from models.schemas import Business, PlaceMatch
from utils.geo import haversine_meters


def normalize_name(name: str) -> str:
    text = unicodedata.normalize("NFKD", name or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9 ]+", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def name_similarity(a: str, b: str) -> float:
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    return SequenceMatcher(None, na, nb).ratio()


def best_match(
    business: Business,
    candidates: List[PlaceMatch],
    min_similarity: float = 0.6,
    max_distance_m: float = 250.0,
) -> Optional[PlaceMatch]:
    """Highest-similarity candidate passing both thresholds, or None."""
    best: Optional[PlaceMatch] = None
    best_score = 0.0

    for candidate in candidates:
        score = name_similarity(business.name, candidate.name)
        if score < min_similarity:
            continue
        if business.latitude is not None and business.longitude is not None:
            meters = haversine_meters(
                business.latitude, business.longitude, candidate.latitude, candidate.longitude
            )
            if meters > max_distance_m:
                continue
        if score > best_score:
            best, best_score = candidate, score

    return best
