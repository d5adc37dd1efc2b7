"""
CareAudit - Scoring Tests

Unit tests for indicator points and the audit percentage.
"""

from decimal import Decimal
from itertools import product

import pytest

from careaudit.models.audit import IndicatorRating
from careaudit.services.rules.scoring import (
    CURRENT_SCORE_VERSION,
    audit_score_percent,
    round_half_up,
    score_for_rating,
)


class TestScoreForRating:
    """Points per rating under the current score table."""

    @pytest.mark.parametrize("rating,points", [
        (IndicatorRating.CONFORMITY_BEST_PRACTICE, 3),
        (IndicatorRating.CONFORMITY, 2),
        (IndicatorRating.OBSERVATION, 1),
        (IndicatorRating.MINOR_NC, 1),
        (IndicatorRating.MAJOR_NC, 0),
    ])
    def test_points(self, rating, points):
        assert score_for_rating(rating) == points

    def test_accepts_raw_values(self):
        assert score_for_rating("CONFORMITY", CURRENT_SCORE_VERSION) == 2

    def test_unknown_version(self):
        with pytest.raises(KeyError):
            score_for_rating(IndicatorRating.CONFORMITY, "v0")


class TestAuditScorePercent:
    """Aggregate percentage of an audit."""

    def test_no_template_is_null(self):
        assert audit_score_percent([], None) is None

    def test_empty_template_is_zero(self):
        assert audit_score_percent([], 0) == 0

    def test_all_best_practice(self):
        assert audit_score_percent([3, 3, 3], 3) == 100

    def test_unanswered_indicators_count_against_score(self):
        # 2 + 3 of a possible 9
        assert audit_score_percent([2, 3], 3) == 56

    def test_half_rounds_up(self):
        # 15 of 24 points is 62.5%
        assert audit_score_percent([3, 3, 3, 3, 2, 1, 0, 0], 8) == 63
        assert round_half_up(Decimal("62.5")) == 63
        assert round_half_up(Decimal("62.4")) == 62

    def test_clamped_to_hundred(self):
        assert audit_score_percent([3, 3, 3, 3], 1) == 100

    def test_raising_one_rating_never_lowers_the_score(self):
        ladder = sorted(IndicatorRating, key=score_for_rating)
        for ratings in product(ladder, repeat=3):
            base = audit_score_percent([score_for_rating(r) for r in ratings], 4)
            for position, rating in enumerate(ratings):
                for better in ladder[ladder.index(rating) + 1:]:
                    stepped = list(ratings)
                    stepped[position] = better
                    score = audit_score_percent([score_for_rating(r) for r in stepped], 4)
                    assert score >= base, (ratings, position, better)
