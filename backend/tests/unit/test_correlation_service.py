"""Tests for the daily-return correlation matrix."""

from datetime import date, timedelta

import pytest

from services.correlation_service import correlation_matrix


def _series(closes, start=date(2024, 1, 1)):
    return [((start + timedelta(days=i)).isoformat(), c) for i, c in enumerate(closes)]


BASE = [100, 102, 101, 105, 104, 108, 107, 111, 110, 114, 113, 117]


class TestCorrelationMatrix:
    def test_identical_moves_correlate_one(self):
        result = correlation_matrix({
            "AAA": _series(BASE),
            "BBB": _series([c * 2 for c in BASE]),
        })

        assert result["symbols"] == ["AAA", "BBB"]
        assert result["matrix"][0][0] == 1.0
        assert result["matrix"][0][1] == pytest.approx(1.0)
        assert result["matrix"][1][0] == result["matrix"][0][1]
        assert result["average"] == pytest.approx(1.0)

    def test_opposite_moves_correlate_minus_one(self):
        mirrored = [200 - c for c in BASE]

        result = correlation_matrix({"AAA": _series(BASE), "BBB": _series(mirrored)})

        assert result["matrix"][0][1] < -0.9
        assert result["matrix"][0][1] >= -1.0

    def test_flat_series_correlates_zero(self):
        result = correlation_matrix({"AAA": _series(BASE), "CASH": _series([1.0] * len(BASE))})
        assert result["matrix"][0][1] == 0.0

    def test_insufficient_overlap_is_none(self):
        result = correlation_matrix({
            "AAA": _series(BASE),
            "NEW": _series(BASE[:4], start=date(2024, 1, 9)),
        })

        assert result["matrix"][0][1] is None
        assert result["average"] is None

    def test_only_overlapping_dates_used(self):
        shifted = _series(BASE, start=date(2024, 1, 3))
        result = correlation_matrix({"AAA": _series(BASE + BASE[:2]), "BBB": shifted})
        # ten shared dates: enough to compute
        assert result["matrix"][0][1] is not None

    def test_symbols_without_history_dropped(self):
        result = correlation_matrix({"AAA": _series(BASE), "EMPTY": []})
        assert result["symbols"] == ["AAA"]
        assert result["matrix"] == [[1.0]]

    def test_empty_input(self):
        assert correlation_matrix({}) == {"symbols": [], "matrix": [], "average": None}
