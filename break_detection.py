"""
Break Detection Engine
======================
Segmented-trend detection over the monthly vegetation series.

The series searched is either the residual of the complete-series
vegetation/climate relationship (VPR) or, when that relationship is unusable,
the raw VI. A seasonal component (statsmodels STL) is removed first, then
ruptures binary segmentation with a piecewise-linear cost proposes breaks.
The number of breaks is picked by BIC over piecewise trend fits.

Breakpoints are returned as 0-based positions of the last pre-break month.
"""

from dataclasses import dataclass, field
from typing import Optional
import numpy as np
import ruptures as rpt
from ruptures.exceptions import BadSegmentationParameters
from statsmodels.tsa.seasonal import STL
import warnings

from regression import ols, RegressionFit

warnings.filterwarnings("ignore")


@dataclass(frozen=True)
class BreakDetection:
    bkps: tuple
    method: str
    cts_fit: Optional[RegressionFit]
    model: dict = field(default_factory=dict)


class BreakDetectionEngine:
    def __init__(self, h=0.15, season='none', max_breaks=None, period=12):
        if not 0 < h < 0.5:
            raise ValueError(f"h must be in (0, 0.5), got {h}")
        self.h = h
        self.season = season
        self.max_breaks = max_breaks
        self.period = period

    def detect(self, veg, climate=None, temp=None, raw=False):
        """
        Main entry point.
        Input: monthly VI, the CTS climate covariate (and temperature),
        raw=True to search the VI itself instead of the VPR residuals.
        Output: BreakDetection.
        """
        y = np.asarray(veg, dtype=float)
        cts_fit = None

        if raw or climate is None:
            method = 'raw'
            signal = self._deseason(y)
        else:
            columns = {'climate': np.asarray(climate, dtype=float)}
            if temp is not None:
                columns['temp'] = np.asarray(temp, dtype=float)
            cts_fit, results = ols(y, columns)
            method = 'residual'
            signal = np.asarray(results.resid, dtype=float)
            if self.season != 'none':
                signal = self._deseason(signal)

        bkps, bic = self._segment(signal)
        return BreakDetection(
            bkps=tuple(bkps),
            method=method,
            cts_fit=cts_fit,
            model={'signal': signal, 'bic': bic, 'h': self.h},
        )

    def _deseason(self, y):
        if len(y) < 2 * self.period:
            return y
        stl = STL(y, period=self.period, robust=True).fit()
        return y - np.asarray(stl.seasonal)

    def _segment(self, signal):
        n = len(signal)
        min_size = max(int(np.floor(self.h * n)), 3)
        max_breaks = self.max_breaks
        if max_breaks is None:
            max_breaks = int(np.floor(1 / self.h)) - 1
        max_breaks = min(max_breaks, n // min_size - 1)

        t = np.arange(n, dtype=float)
        design = np.column_stack([signal, np.ones(n), t])

        bic = {0: self._bic(signal, [n])}
        best = (bic[0], [n])
        if max_breaks < 1:
            return [], bic

        algo = rpt.Binseg(model='linear', min_size=min_size, jump=1).fit(design)
        for k in range(1, max_breaks + 1):
            try:
                ends = algo.predict(n_bkps=k)
            except BadSegmentationParameters:
                break
            bic[k] = self._bic(signal, ends)
            if bic[k] < best[0]:
                best = (bic[k], ends)

        # ruptures reports segment ends (exclusive); keep the last pre-break month
        return [end - 1 for end in best[1][:-1]], bic

    @staticmethod
    def _bic(signal, ends):
        n = len(signal)
        rss = 0.0
        start = 0
        for end in ends:
            seg = signal[start:end]
            t = np.arange(start, end, dtype=float)
            X = np.column_stack([np.ones(len(seg)), t])
            coef, *_ = np.linalg.lstsq(X, seg, rcond=None)
            rss += float(np.sum((seg - X @ coef) ** 2))
            start = end
        k = len(ends) - 1
        n_params = 2 * (k + 1) + k
        return n * np.log(max(rss, 1e-12) / n) + n_params * np.log(n)
