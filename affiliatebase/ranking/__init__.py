"""Leaderboard ranking package.

This package contains modules for:
- Trending score formula (score.py)
- Ranked leaderboard queries (listing.py)
- Scheduled recompute, rotate and prune jobs (pipeline.py)
"""

from .score import (
    ScoreWeights,
    DEFAULT_WEIGHTS,
    calculate_trending_score,
    ranking_score,
    organic_score,
    score_breakdown,
)

from .listing import list_ranked_programs, list_featured_programs

from .pipeline import (
    RecomputeStats,
    recompute_scores,
    rotate_random_weights,
    prune_logs,
)

__all__ = [
    # Scoring
    'ScoreWeights',
    'DEFAULT_WEIGHTS',
    'calculate_trending_score',
    'ranking_score',
    'organic_score',
    'score_breakdown',

    # Listing
    'list_ranked_programs',
    'list_featured_programs',

    # Jobs
    'RecomputeStats',
    'recompute_scores',
    'rotate_random_weights',
    'prune_logs',
]
