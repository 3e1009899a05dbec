"""
Input Validation
================
Ordered checks for the series handed to the TSS-RESTREND engine.

Each check returns None when the input is fine, or an exception instance
describing the first problem it found. `first_failure` runs a list of
checks in order and raises the first failure, so the caller gets exactly
one descriptive error naming the offending input.
"""

import numpy as np
import pandas as pd

from exceptions import ValidationError, ShapeMismatchError

FREQ_PREFIX = {'monthly': ('M',), 'annual': ('A', 'Y')}


def check_series(name, obj, kind='monthly'):
    if not isinstance(obj, pd.Series):
        return ValidationError(name, "not a time series (expected a pandas Series)")
    if not isinstance(obj.index, pd.PeriodIndex):
        return ValidationError(name, "not a time series (expected a PeriodIndex)")
    if not obj.index.freqstr.upper().startswith(FREQ_PREFIX[kind]):
        return ValidationError(name, f"expected {kind} frequency, got '{obj.index.freqstr}'")
    if len(obj) < 2:
        return ValidationError(name, "needs at least two observations")
    if obj.isna().any():
        return ValidationError(name, "contains missing values")
    steps = np.diff(obj.index.asi8)
    if np.any(steps != 1):
        return ValidationError(name, "timestamps are not strictly increasing and evenly spaced")
    return None


def check_aligned(name, obj, ref_name, ref):
    if len(obj) != len(ref):
        return ValidationError(name, f"length {len(obj)} does not match {ref_name} ({len(ref)})")
    if obj.index.freqstr != ref.index.freqstr:
        return ValidationError(name, f"frequency does not match {ref_name}")
    if not obj.index.equals(ref.index):
        return ValidationError(name, f"timestamps do not match {ref_name}")
    return None


def check_positions(name, positions, n_annual, n_monthly):
    positions = np.asarray(positions)
    if len(positions) != n_annual:
        return ValidationError(name, f"length {len(positions)} does not match the annual series ({n_annual})")
    if positions.size and (positions.min() < 0 or positions.max() >= n_monthly):
        return ValidationError(name, "positions fall outside the monthly series")
    if np.any(np.diff(positions) <= 0):
        return ValidationError(name, "positions must be strictly increasing")
    return None


def check_same_length(name_a, a, name_b, b):
    if len(a) != len(b):
        return ShapeMismatchError(
            f"{name_a}/{name_b}",
            f"different shapes ({len(a)} vs {len(b)}); they must match the annual series"
        )
    return None


def first_failure(checks):
    """
    Evaluate zero-argument callables in order and raise the first failure.
    """
    for check in checks:
        failure = check()
        if failure is not None:
            raise failure
