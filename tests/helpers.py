import numpy as np
import pandas as pd

from break_detection import BreakDetection


def monthly(values, start="2000-01", name=None):
    """Helper: wrap values in a monthly PeriodIndex series."""
    index = pd.period_range(start, periods=len(values), freq="M")
    return pd.Series(np.asarray(values, dtype=float), index=index, name=name)


def annual(values, start="2000", name=None):
    """Helper: wrap values in an annual PeriodIndex series."""
    index = pd.period_range(start, periods=len(values), freq="Y")
    return pd.Series(np.asarray(values, dtype=float), index=index, name=name)


class StubDetector:
    """Break detector returning fixed candidates; records the raw flag it was called with."""

    def __init__(self, bkps=(), method="residual"):
        self.bkps = tuple(bkps)
        self.method = method
        self.calls = []

    def detect(self, veg, climate=None, temp=None, raw=False):
        self.calls.append(raw)
        return BreakDetection(
            bkps=self.bkps,
            method="raw" if raw else self.method,
            cts_fit=None,
        )
