"""
Places Gateway
--------------
Nearby-competitor search and free-text address resolution against the
Google Places API (New).

  search_nearby(...)     -> List[Competitor]   (raises ProviderUnavailable)
  search_by_address(...) -> List[PlaceMatch]   (never raises)

Without an API key, nearby search returns deterministic mock competitors and
address search returns nothing.
"""

import logging
import math
import random
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings
from models.errors import ProviderUnavailable
from models.schemas import Competitor, PlaceMatch, Review
from utils.geo import distance_label, haversine_meters, offset_point

logger = logging.getLogger(__name__)

NEARBY_URL = "https://places.googleapis.com/v1/places:searchNearby"
TEXT_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"

NEARBY_FIELDS = [
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.rating",
    "places.userRatingCount",
    "places.location",
    "places.priceLevel",
]
TEXT_SEARCH_FIELDS = [
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.rating",
    "places.userRatingCount",
    "places.location",
]

# Business category -> provider place type. "other" searches without a type filter.
PLACE_TYPES: Dict[str, Optional[str]] = {
    "restaurant": "restaurant",
    "cafe": "cafe",
    "retail": "store",
    "gym": "gym",
    "salon": "beauty_salon",
    "pharmacy": "pharmacy",
    "hotel": "hotel",
    "bar": "bar",
    "bakery": "bakery",
    "supermarket": "supermarket",
    "clinic": "doctor",
    "dentist": "dentist",
    "bank": "bank",
    "gas_station": "gas_station",
    "car_repair": "car_repair",
    "other": None,
}

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": "Free",
    "PRICE_LEVEL_INEXPENSIVE": "$",
    "PRICE_LEVEL_MODERATE": "$$",
    "PRICE_LEVEL_EXPENSIVE": "$$$",
    "PRICE_LEVEL_VERY_EXPENSIVE": "$$$$",
}


def format_price_level(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return PRICE_LEVELS.get(value)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def parse_reviews(raw_reviews: List[Dict[str, Any]], limit: int = 5) -> List[Review]:
    """Provider reviews -> Review list, newest first, capped at `limit`."""
    reviews = []
    for raw in raw_reviews or []:
        text = (raw.get("text") or {}).get("text") or (raw.get("originalText") or {}).get("text")
        if not text:
            continue
        reviews.append(Review(
            text=text,
            author=(raw.get("authorAttribution") or {}).get("displayName") or "Anonymous",
            rating=raw.get("rating"),
            date=_parse_time(raw.get("publishTime")),
        ))
    reviews.sort(key=lambda r: r.date or datetime.min, reverse=True)
    return reviews[:limit]


class PlacesGateway:
    """
    Thin async wrapper around the places provider.

    Pass `client` to reuse a configured httpx.AsyncClient (tests inject one
    with a MockTransport); otherwise a client is opened per call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = settings.PLACES_TIMEOUT,
        page_size: int = settings.PLACES_PAGE_SIZE,
        max_reviews: int = settings.MAX_REVIEWS_PER_COMPETITOR,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.page_size = page_size
        self.max_reviews = max_reviews
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    # ─── HTTP ────────────────────────────────────────────────────────────────

    async def _post(self, url: str, body: Dict[str, Any], fields: List[str]) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key or "",
            "X-Goog-FieldMask": ",".join(fields),
        }
        if self._client is not None:
            return await self._client.post(url, json=body, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=body, headers=headers)

    # ─── Nearby search ───────────────────────────────────────────────────────

    async def search_nearby(
        self,
        lat: float,
        lng: float,
        category: str,
        radius_meters: int,
        include_reviews: bool = True,
        language: str = "en",
        max_results: int = 10,
    ) -> List[Competitor]:
        if not self.configured:
            logger.info("Places API key not configured, returning mock competitors")
            return mock_competitors(category, lat, lng, radius_meters, include_reviews, max_results)

        body: Dict[str, Any] = {
            "maxResultCount": max(1, min(max_results, self.page_size)),
            "rankPreference": "DISTANCE",
            "languageCode": language,
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": float(radius_meters),
                },
            },
        }
        place_type = PLACE_TYPES.get(category)
        if place_type:
            body["includedTypes"] = [place_type]

        fields = NEARBY_FIELDS + (["places.reviews"] if include_reviews else [])

        try:
            resp = await self._post(NEARBY_URL, body, fields)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Places provider unreachable: {e}") from e

        if resp.status_code in (401, 403):
            raise ProviderUnavailable(
                f"Places provider rejected the configured API key ({resp.status_code})"
            )
        if resp.status_code >= 300:
            raise ProviderUnavailable(f"Places provider error: {resp.status_code} {resp.reason_phrase}")

        try:
            places = resp.json().get("places") or []
        except ValueError as e:
            raise ProviderUnavailable("Places provider returned a malformed response") from e

        competitors = []
        for place in places[:max_results]:
            location = place.get("location") or {}
            p_lat, p_lng = location.get("latitude"), location.get("longitude")
            competitors.append(Competitor(
                name=(place.get("displayName") or {}).get("text") or "Unknown",
                address=place.get("formattedAddress") or "Address not available",
                rating=place.get("rating"),
                rating_count=place.get("userRatingCount"),
                price_level=format_price_level(place.get("priceLevel")),
                distance=distance_label(lat, lng, p_lat, p_lng),
                reviews=parse_reviews(place.get("reviews"), self.max_reviews) if include_reviews else [],
                latitude=p_lat,
                longitude=p_lng,
            ))

        logger.info(f"Places: {len(competitors)} competitors for {category} within {radius_meters}m")
        return competitors

    # ─── Address search ──────────────────────────────────────────────────────

    async def search_by_address(self, query: str) -> List[PlaceMatch]:
        if not self.configured:
            logger.info("Places API key not configured, returning no address matches")
            return []

        try:
            resp = await self._post(
                TEXT_SEARCH_URL, {"textQuery": query, "maxResultCount": 10}, TEXT_SEARCH_FIELDS
            )
            if resp.status_code >= 300:
                logger.warning(f"Address search failed: {resp.status_code} {resp.reason_phrase}")
                return []
            places = resp.json().get("places") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Address search failed for '{query}': {e}")
            return []

        matches = []
        for place in places:
            location = place.get("location") or {}
            if location.get("latitude") is None or location.get("longitude") is None:
                continue
            matches.append(PlaceMatch(
                place_id=place.get("id", ""),
                name=(place.get("displayName") or {}).get("text") or "Unknown",
                address=place.get("formattedAddress") or "",
                latitude=location["latitude"],
                longitude=location["longitude"],
                rating=place.get("rating"),
                rating_count=place.get("userRatingCount"),
            ))
        return matches


# ─── Mock data ───────────────────────────────────────────────────────────────


MOCK_NAMES: Dict[str, List[str]] = {
    "restaurant": ["The Golden Fork", "Bistro Milano", "Casa Verde", "Ocean Breeze Grill", "The Hungry Chef"],
    "cafe": ["Morning Brew", "The Coffee House", "Bean & Leaf", "Espresso Junction", "Cozy Corner Cafe"],
    "retail": ["City Mart", "Fashion Forward", "Tech Haven", "Home & Living", "The General Store"],
    "gym": ["PowerFit Studio", "Iron Temple", "FitLife Center", "Muscle Factory", "Core Strength Gym"],
    "salon": ["Glamour Studio", "Hair & Beyond", "The Beauty Bar", "Style Salon", "Radiance Spa"],
    "pharmacy": ["HealthFirst Pharmacy", "MedCare Plus", "QuickMeds", "Wellness Pharmacy", "Family Drug Store"],
    "hotel": ["Grand Plaza Hotel", "Comfort Inn", "The Riverside Lodge", "City Center Hotel", "Sunset Suites"],
    "bar": ["The Night Owl", "Cheers Pub", "The Tipsy Glass", "Moonlight Lounge", "Draft House"],
    "bakery": ["Sweet Delights", "The Bread Basket", "Golden Crust", "Sugar & Spice", "The Pastry Corner"],
    "supermarket": ["Fresh Mart", "Super Save", "Daily Grocers", "The Food Emporium", "Value Market"],
    "clinic": ["City Health Clinic", "Family Care Center", "MedFirst Clinic", "Wellness Medical", "QuickCare"],
    "dentist": ["Smile Dental", "Bright Teeth Clinic", "Family Dentistry", "Dental Care Plus", "Pearl Dental"],
    "bank": ["City Bank", "Trust Financial", "First National", "Capital Bank", "Unity Bank"],
    "gas_station": ["Quick Fuel", "Energy Plus", "City Gas", "Fast Lane Fuel", "Green Energy Station"],
    "car_repair": ["Auto Care Center", "Quick Fix Garage", "Master Mechanics", "Pro Auto Service", "Drive Right Repairs"],
    "other": ["Local Business", "Community Store", "Service Center", "The Local Hub", "Main Street Shop"],
}

MOCK_REVIEWS = [
    ("Friendly staff and quick service, will come back.", 5.0),
    ("Decent overall but prices went up recently.", 3.0),
    ("Long waits at peak hours, otherwise fine.", 3.0),
    ("Best in the neighbourhood, always consistent.", 5.0),
    ("Parking is a nightmare and nobody answers the phone.", 2.0),
]


def mock_competitors(
    category: str,
    lat: float,
    lng: float,
    radius_meters: int,
    include_reviews: bool = True,
    max_results: int = 10,
) -> List[Competitor]:
    """
    Deterministic synthetic competitors for development without an API key.
    Seeded from category + coordinates, so repeated runs agree.
    """
    rng = random.Random(f"{category}:{lat:.5f}:{lng:.5f}")
    names = MOCK_NAMES.get(category, MOCK_NAMES["other"])
    count = min(rng.randint(2, len(names)), max_results)
    spread = max(min(radius_meters, 1500) * 0.9, 50)

    competitors = []
    for i, name in enumerate(names[:count]):
        bearing = rng.uniform(0, 2 * math.pi)
        meters = rng.uniform(80, spread)
        c_lat, c_lng = offset_point(lat, lng, meters * math.cos(bearing), meters * math.sin(bearing))
        reviews = []
        if include_reviews:
            for j, (text, rating) in enumerate(rng.sample(MOCK_REVIEWS, 2)):
                reviews.append(Review(text=text, author=f"Local Guide {i + 1}{j}", rating=rating))
        competitors.append(Competitor(
            name=name,
            address=f"{100 + i * 50} Main Street, Local City",
            rating=round(3.5 + rng.random() * 1.5, 1),
            rating_count=rng.randint(50, 549),
            price_level=rng.choice(["$", "$$", "$$$", "$$$$"]),
            distance=distance_label(lat, lng, c_lat, c_lng),
            reviews=reviews,
            latitude=c_lat,
            longitude=c_lng,
        ))

    competitors.sort(key=lambda c: haversine_meters(lat, lng, c.latitude, c.longitude))
    return competitors
