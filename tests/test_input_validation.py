"""
Tests for input_validation.py.

Each check returns an exception instance naming the offending input; the
ordered runner raises the first one.
"""

import numpy as np
import pandas as pd
import pytest

from exceptions import ShapeMismatchError, ValidationError
from input_validation import (
    check_aligned,
    check_positions,
    check_same_length,
    check_series,
    first_failure,
)
from helpers import annual, monthly


class TestCheckSeries:

    def test_valid_monthly_series_passes(self):
        assert check_series("veg", monthly(np.arange(24))) is None

    def test_valid_annual_series_passes(self):
        assert check_series("anu", annual(np.arange(10)), "annual") is None

    def test_plain_array_is_rejected(self):
        failure = check_series("veg", np.arange(24))
        assert isinstance(failure, ValidationError)
        assert failure.name == "veg"

    def test_datetime_index_is_rejected(self):
        series = pd.Series(np.arange(24.0), index=pd.date_range("2000-01-01", periods=24, freq="D"))
        assert isinstance(check_series("veg", series), ValidationError)

    def test_annual_series_where_monthly_expected(self):
        failure = check_series("veg", annual(np.arange(10)), "monthly")
        assert isinstance(failure, ValidationError)
        assert "monthly" in str(failure)

    def test_missing_values_rejected(self):
        values = np.arange(24.0)
        values[5] = np.nan
        failure = check_series("veg", monthly(values))
        assert "missing" in str(failure)

    def test_single_observation_rejected(self):
        assert isinstance(check_series("veg", monthly([1.0])), ValidationError)

    def test_gap_in_periods_rejected(self):
        index = pd.PeriodIndex(["2000-01", "2000-02", "2000-04"], freq="M")
        series = pd.Series([1.0, 2.0, 3.0], index=index)
        failure = check_series("veg", series)
        assert "evenly spaced" in str(failure)


class TestAlignmentChecks:

    def test_same_index_is_aligned(self):
        a = monthly(np.arange(12))
        assert check_aligned("climate", a * 2, "veg", a) is None

    def test_length_mismatch(self):
        failure = check_aligned("climate", monthly(np.arange(10)), "veg", monthly(np.arange(12)))
        assert failure.name == "climate"
        assert "length" in str(failure)

    def test_shifted_periods_not_aligned(self):
        a = monthly(np.arange(12), start="2000-01")
        b = monthly(np.arange(12), start="2000-02")
        assert "timestamps" in str(check_aligned("climate", b, "veg", a))

    def test_same_length_returns_shape_mismatch(self):
        failure = check_same_length("rf_b4", np.zeros(5), "rf_af", np.zeros(6))
        assert isinstance(failure, ShapeMismatchError)
        assert isinstance(failure, ValidationError)

    def test_positions_outside_monthly_series(self):
        failure = check_positions("veg_index", [2, 14, 30], 3, 24)
        assert isinstance(failure, ValidationError)

    def test_positions_not_increasing(self):
        assert check_positions("veg_index", [14, 2, 20], 3, 24) is not None

    def test_positions_length_must_match_annual(self):
        assert check_positions("veg_index", [2, 14], 3, 24) is not None


class TestFirstFailure:

    def test_raises_first_failure_in_order(self):
        checks = [
            lambda: None,
            lambda: ValidationError("first", "bad"),
            lambda: ValidationError("second", "worse"),
        ]
        with pytest.raises(ValidationError) as excinfo:
            first_failure(checks)
        assert excinfo.value.name == "first"

    def test_later_checks_not_evaluated(self):
        calls = []

        def record():
            calls.append(True)

        with pytest.raises(ValidationError):
            first_failure([lambda: ValidationError("x", "bad"), record])
        assert calls == []

    def test_all_passing(self):
        assert first_failure([lambda: None, lambda: None]) is None
