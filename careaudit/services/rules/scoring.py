"""
CareAudit - Indicator Scoring

Pure mapping from indicator rating to points, and the aggregate audit
percentage. Score tables are versioned; every stored response carries the
version it was scored under so historical scores stay interpretable.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional

from careaudit.models.audit import IndicatorRating


CURRENT_SCORE_VERSION = "v2"
MAX_POINTS_PER_INDICATOR = 3

SCORE_TABLES: Dict[str, Dict[IndicatorRating, int]] = {
    "v2": {
        IndicatorRating.CONFORMITY_BEST_PRACTICE: 3,
        IndicatorRating.CONFORMITY: 2,
        IndicatorRating.OBSERVATION: 1,
        IndicatorRating.MINOR_NC: 1,
        IndicatorRating.MAJOR_NC: 0,
    },
}


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero (62.5 -> 63)."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_for_rating(rating: IndicatorRating, version: str = CURRENT_SCORE_VERSION) -> int:
    """
    Points for a rating under a score table version.

    Raises:
        KeyError: unknown score version
    """
    return SCORE_TABLES[version][IndicatorRating(rating)]


def audit_score_percent(
    score_points: Iterable[int],
    indicator_count: Optional[int],
) -> Optional[int]:
    """
    Aggregate percentage for an audit.

    Args:
        score_points: stored points of every response in the audit
        indicator_count: indicators in the attached template, or None when
            no template is attached yet

    Returns:
        None without a template, 0 for an empty template, otherwise
        round(clamp(sum / (count * 3) * 100, 0, 100))
    """
    if indicator_count is None:
        return None
    if indicator_count == 0:
        return 0
    
    total = Decimal(sum(score_points))
    max_points = Decimal(indicator_count * MAX_POINTS_PER_INDICATOR)
    percent = total / max_points * 100
    percent = max(Decimal(0), min(Decimal(100), percent))
    return round_half_up(percent)
