"""Scoring for the trending leaderboard.

Implements the metrics used to rank affiliate programs:
- Organic score: 7-day views and clicks with a CTR quality multiplier
- Trending score: organic + manual boost, stored on the program
- Recency boost: temporary bonus for newly listed programs, added at read time
- Quality and trust scores: profile completeness indicators for display
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from affiliatebase.core.settings import Settings
from affiliatebase.core.time import get_age_days

# Scoring configuration
VIEW_WEIGHT = 1.0
CLICK_WEIGHT = 10.0
MIN_VIEWS_FOR_CTR = 30

# (minimum CTR in percent, exclusive; multiplier), strongest first
CTR_TIERS: Tuple[Tuple[int, float], ...] = ((10, 1.3), (5, 1.1))

# (maximum age in days, exclusive; bonus points), youngest first
RECENCY_TIERS: Tuple[Tuple[float, float], ...] = ((3, 100.0), (7, 50.0))

PLACEHOLDER_VALUES = {"No description provided.", "No tagline provided.", "Not specified"}

QUALITY_FIELDS = (
    "description", "cookie_duration", "payout_method", "avg_order_value", "x_handle",
    "target_audience", "affiliates_count_range", "min_payout_value", "founding_date",
    "approval_time_range", "email", "payouts_total_range",
)

AFFILIATES_TRUST_TIERS = {
    "0-50": 1,
    "51-100": 2,
    "101-500": 4,
    "501-1000": 6,
    "1001-5000": 8,
    "5001+": 10,
}

PAYOUTS_TRUST_TIERS = {
    "$0-$10k": 1,
    "$10k-$50k": 2,
    "$50k-$100k": 4,
    "$100k-$500k": 6,
    "$500k-$1M": 8,
    "$1M+": 10,
}


@dataclass(frozen=True)
class ScoreWeights:
    """Tunable constants for the trending score."""
    view_weight: float = VIEW_WEIGHT
    click_weight: float = CLICK_WEIGHT
    min_views_for_ctr: int = MIN_VIEWS_FOR_CTR
    ctr_tiers: Tuple[Tuple[int, float], ...] = CTR_TIERS
    recency_tiers: Tuple[Tuple[float, float], ...] = field(default=RECENCY_TIERS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoreWeights":
        return cls(
            view_weight=settings.score_view_weight,
            click_weight=settings.score_click_weight,
            min_views_for_ctr=settings.score_min_views_for_ctr,
        )


DEFAULT_WEIGHTS = ScoreWeights()


def _safe_count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def ctr_multiplier(views: int, clicks: int, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Quality multiplier for click-through rate; only applies past the minimum view count."""
    if views <= weights.min_views_for_ctr:
        return 1.0
    for min_ctr_pct, multiplier in weights.ctr_tiers:
        # clicks / views > pct / 100, kept in integers
        if clicks * 100 > min_ctr_pct * views:
            return multiplier
    return 1.0


def _raw_organic(views: int, clicks: int, weights: ScoreWeights) -> float:
    base = views * weights.view_weight + clicks * weights.click_weight
    return base * ctr_multiplier(views, clicks, weights)


def organic_score(views: Any, clicks: Any, weights: ScoreWeights = DEFAULT_WEIGHTS) -> int:
    """
    Organic performance score from rolling views and clicks.

    ``(views * view_weight + clicks * click_weight) * ctr_multiplier``, taken as the
    best value over all view counts up to ``views`` so an extra view never lowers
    the score by pushing CTR under a tier. Only the largest view count that still
    earns each tier needs checking.

    Args:
        views: Rolling unique views (clamped to >= 0)
        clicks: Rolling outbound clicks (clamped to >= 0)
        weights: Scoring constants

    Returns:
        Rounded organic score
    """
    views = _safe_count(views)
    clicks = _safe_count(clicks)

    best = _raw_organic(views, clicks, weights)
    for min_ctr_pct, _ in weights.ctr_tiers:
        # largest v with clicks * 100 > pct * v
        tier_cap = (clicks * 100 - 1) // min_ctr_pct
        candidate = min(views, tier_cap)
        if candidate > weights.min_views_for_ctr:
            best = max(best, _raw_organic(candidate, clicks, weights))

    return round_half_up(best)


def recency_boost(created_at: Optional[datetime], now: Optional[datetime],
                  weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Bonus for new listings: +100 under 3 days, +50 under 7 days."""
    if created_at is None or now is None:
        return 0.0
    age_days = get_age_days(created_at, now)
    for max_age, bonus in weights.recency_tiers:
        if age_days < max_age:
            return bonus
    return 0.0


def calculate_trending_score(manual_score_boost: Optional[float], rolling_views: Any, rolling_clicks: Any,
                             weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """
    Trending score stored on the program.

    Depends only on the boost and the rolling counts. Listing age is not part
    of it; see ``ranking_score`` for the read-time value.

    Args:
        manual_score_boost: Admin override added to the organic score
        rolling_views: Views in the rolling window
        rolling_clicks: Clicks in the rolling window
        weights: Scoring constants

    Returns:
        Non-negative score
    """
    score = organic_score(rolling_views, rolling_clicks, weights)
    score += float(manual_score_boost or 0)
    return max(0.0, float(score))


def ranking_score(trending_score: Optional[float], created_at: Optional[datetime], now: Optional[datetime],
                  weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Stored score plus the recency boost at ``now``; what the leaderboard sorts by."""
    return float(trending_score or 0) + recency_boost(created_at, now, weights)


def calculate_quality_score(program: Any) -> int:
    """Profile completeness: +10 for a logo, +5 per filled optional field."""
    score = 0
    logo_url = getattr(program, "logo_url", None)
    if logo_url and logo_url.strip():
        score += 10

    for field_name in QUALITY_FIELDS:
        value = getattr(program, field_name, None)
        if value is None or value == "":
            continue
        if isinstance(value, str) and value in PLACEHOLDER_VALUES:
            continue
        score += 5

    return score


def calculate_trust_score(program: Any) -> int:
    trust = AFFILIATES_TRUST_TIERS.get(getattr(program, "affiliates_count_range", None) or "", 0)
    trust += PAYOUTS_TRUST_TIERS.get(getattr(program, "payouts_total_range", None) or "", 0)
    return min(trust, 10)


def score_breakdown(program: Any, rolling_views: int, rolling_clicks: int,
                    now: Optional[datetime] = None, weights: ScoreWeights = DEFAULT_WEIGHTS) -> Dict[str, Any]:
    """Per-component view of a program's score for the admin screen."""
    return {
        "organic": organic_score(rolling_views, rolling_clicks, weights),
        "manualBoost": float(program.manual_score_boost or 0),
        "recencyBoost": recency_boost(program.created_at, now, weights),
        "quality": calculate_quality_score(program),
        "trust": calculate_trust_score(program),
        "rollingViews": rolling_views,
        "rollingClicks": rolling_clicks,
    }
