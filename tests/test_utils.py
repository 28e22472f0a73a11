"""
Geo, matching and plan-limit helpers.
"""

import pytest

from conftest import make_business
from models.errors import LimitExceeded
from models.schemas import PlaceMatch
from services.limits import (
    check_business_quota,
    check_radius,
    check_report_quota,
    limits_for,
)
from utils.geo import distance_label, format_distance, haversine_meters, offset_point
from utils.matching import best_match, name_similarity, normalize_name


# ─── Distance ────────────────────────────────────────────────────────────────

class TestDistance:
    def test_haversine_lisbon_to_porto(self):
        meters = haversine_meters(38.7223, -9.1393, 41.1579, -8.6291)
        assert 270_000 < meters < 280_000

    def test_haversine_same_point_is_zero(self):
        assert haversine_meters(38.7, -9.1, 38.7, -9.1) == pytest.approx(0.0)

    def test_850_meters_formats_as_meters(self):
        lat, lng = offset_point(38.7, -9.1, 850, 0)
        assert distance_label(38.7, -9.1, lat, lng) == "850m"

    def test_2340_meters_formats_as_km(self):
        lat, lng = offset_point(38.7, -9.1, 2340, 0)
        assert distance_label(38.7, -9.1, lat, lng) == "2.3km"

    def test_format_distance_boundaries(self):
        assert format_distance(12.4) == "12m"
        assert format_distance(999.4) == "999m"
        assert format_distance(1000) == "1.0km"
        assert format_distance(15_560) == "15.6km"

    def test_missing_coordinates_give_no_label(self):
        assert distance_label(38.7, -9.1, None, -9.1) is None
        assert distance_label(38.7, -9.1, 38.7, None) is None


# ─── Matching ────────────────────────────────────────────────────────────────

class TestMatching:
    def test_normalize_strips_accents_and_punctuation(self):
        assert normalize_name("  Café  Central! ") == "cafe central"

    def test_identical_after_normalization(self):
        assert name_similarity("TASCA do Bairro", "Tasca do Bairro") == 1.0

    def test_empty_name_has_no_similarity(self):
        assert name_similarity("", "Tasca") == 0.0

    def test_best_match_picks_close_similar_candidate(self):
        business = make_business()
        near_lat, near_lng = offset_point(38.7, -9.1, 40, 0)
        candidates = [
            PlaceMatch(name="Pastelaria Suiça", address="x", latitude=near_lat, longitude=near_lng, rating=4.1),
            PlaceMatch(name="Tasca do Bairro", address="y", latitude=near_lat, longitude=near_lng, rating=4.6),
        ]
        match = best_match(business, candidates)
        assert match is not None
        assert match.rating == 4.6

    def test_far_candidate_rejected(self):
        business = make_business()
        far_lat, far_lng = offset_point(38.7, -9.1, 2000, 0)
        candidates = [PlaceMatch(name="Tasca do Bairro", address="y", latitude=far_lat, longitude=far_lng)]
        assert best_match(business, candidates) is None

    def test_dissimilar_candidate_rejected(self):
        business = make_business()
        candidates = [PlaceMatch(name="Iron Temple Gym", address="y", latitude=38.7, longitude=-9.1)]
        assert best_match(business, candidates) is None


# ─── Plan limits ─────────────────────────────────────────────────────────────

class TestPlanLimits:
    def test_free_tier(self):
        limits = limits_for("free")
        assert (limits.max_businesses, limits.max_monthly_reports) == (1, 2)
        assert (limits.max_radius, limits.max_competitors) == (5000, 10)

    def test_pro_tier_case_insensitive(self):
        limits = limits_for(" PRO ")
        assert (limits.max_businesses, limits.max_monthly_reports) == (3, 10)
        assert (limits.max_radius, limits.max_competitors) == (20000, 100)

    @pytest.mark.parametrize("plan", [None, "", "enterprise", "gold"])
    def test_unknown_defaults_to_free(self, plan):
        assert limits_for(plan) == limits_for("free")

    def test_report_quota(self):
        limits = limits_for("free")
        check_report_quota(limits, 1)
        with pytest.raises(LimitExceeded, match="2 reports per month"):
            check_report_quota(limits, 2)

    def test_radius_limit(self):
        limits = limits_for("free")
        check_radius(limits, 5000)
        with pytest.raises(LimitExceeded, match="5km"):
            check_radius(limits, 5001)

    def test_business_quota(self):
        check_business_quota(limits_for("pro"), 2)
        with pytest.raises(LimitExceeded):
            check_business_quota(limits_for("pro"), 3)
