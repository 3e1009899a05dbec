"""
Climate Window Selection Engine
===============================
Finds the climate accumulation window (offset, accumulation length) that best
explains vegetation.

    - climate_accumulator: every (offset, accumulation) sum of a monthly
      climate series, aligned to the vegetation months
    - window_fit_table: one OLS fit of vegetation on each window
    - select_window: highest r^2 among sign-eligible windows, ties go to the
      shorter accumulation (parsimony)

Temperature is optional. When a temperature table is supplied the temperature
window is picked from multivariate fits (vegetation ~ precip + temp) and its
slope may be negative. A temperature term that is not significant is dropped
and precipitation is re-tested on its own.
"""

from dataclasses import dataclass
from typing import Optional
import numpy as np
import pandas as pd

from exceptions import NoEligibleWindowError, ValidationError
from input_validation import check_series
from regression import ols, RegressionFit


@dataclass(frozen=True)
class ClimateWindow:
    offset: int
    accumulation: int

    def as_key(self):
        return (self.offset, self.accumulation)


@dataclass(frozen=True)
class ClimateSelection:
    window: ClimateWindow
    precip: np.ndarray
    fit: RegressionFit
    temp_window: Optional[ClimateWindow] = None
    temp: Optional[np.ndarray] = None
    retested: bool = False


@dataclass(frozen=True)
class SegmentClimate:
    rf_b4: np.ndarray
    rf_af: np.ndarray
    tm_b4: Optional[np.ndarray]
    tm_af: Optional[np.ndarray]
    before: ClimateSelection
    after: ClimateSelection


def climate_accumulator(veg, climate, max_acp=12, max_osp=4):
    """
    Build the accumulation table for a monthly climate series.

    Rows are (offset, accumulation) pairs with offset in [0, max_osp) and
    accumulation in [1, max_acp]; columns are the vegetation months. The
    climate series must start at least max_acp + max_osp - 1 months before
    the vegetation series.
    """
    failure = check_series('climate', climate, 'monthly')
    if failure is not None:
        raise failure

    rows = {}
    for osp in range(max_osp):
        for acp in range(1, max_acp + 1):
            acc = climate.rolling(acp).sum().shift(osp)
            rows[(osp, acp)] = acc.reindex(veg.index)

    table = pd.DataFrame(rows).T
    table.index.names = ['offset', 'accumulation']
    if table.isna().to_numpy().any():
        raise ValidationError(
            'climate',
            f"does not cover the vegetation period plus a {max_acp + max_osp - 1} month lead-in"
        )
    return table


def window_fit_table(target, table, positions=None):
    """
    Fit target ~ window for every row of an accumulation table.
    positions: columns of the table matching the target (annual max positions),
    None when the target spans every column.
    """
    y = np.asarray(target, dtype=float)
    values = table.to_numpy(dtype=float)
    if positions is not None:
        values = values[:, np.asarray(positions)]

    records = []
    for (osp, acp), x in zip(table.index, values):
        fit, _ = ols(y, {'climate': x})
        records.append({
            'offset': osp,
            'accumulation': acp,
            'slope': fit.slope,
            'intercept': fit.intercept,
            'r_squared': fit.r_squared,
            'p_value': fit.p_value,
            'slope_sign': int(np.sign(fit.slope)),
            'fit': fit,
        })
    return pd.DataFrame(records).set_index(['offset', 'accumulation'])


def select_window(fit_table, allow_negative=False):
    """
    Main entry point of the selector.
    Input: WindowFitTable. Output: (ClimateWindow, RegressionFit).
    """
    eligible = fit_table if allow_negative else fit_table[fit_table['slope'] > 0]
    eligible = eligible.dropna(subset=['r_squared'])
    if eligible.empty:
        raise NoEligibleWindowError(
            "no climate window has a positive slope; retry with allow_negative=True"
        )

    ranked = eligible.reset_index().sort_values(
        ['r_squared', 'accumulation', 'offset'], ascending=[False, True, True]
    )
    best = ranked.iloc[0]
    return ClimateWindow(int(best['offset']), int(best['accumulation'])), best['fit']


def window_values(table, window, positions=None):
    values = table.loc[window.as_key()].to_numpy(dtype=float)
    if positions is not None:
        values = values[np.asarray(positions)]
    return values


class ClimateWindowEngine:
    def __init__(self, sig=0.05, allow_negative=False, allow_negative_retest=False,
                 negative_scope='temperature'):
        if negative_scope not in ('temperature', 'global'):
            raise ValueError(f"negative_scope must be 'temperature' or 'global', got {negative_scope!r}")
        self.sig = sig
        self.allow_negative = allow_negative
        self.allow_negative_retest = allow_negative_retest
        self.negative_scope = negative_scope

    def choose(self, target, acp_table, act_table=None, positions=None, fallback_negative=False):
        """
        Pick the precipitation (and temperature) window for one target series.
        fallback_negative: take the best negative window instead of raising
        NoEligibleWindowError.
        """
        y = np.asarray(target, dtype=float)
        has_temp = act_table is not None

        allow = self.allow_negative or (has_temp and self.negative_scope == 'global')
        window, fit = self._select_precip(y, acp_table, positions, allow, fallback_negative)
        precip = window_values(acp_table, window, positions)

        if not has_temp:
            return ClimateSelection(window=window, precip=precip, fit=fit)

        # Temperature can push vegetation either way, so its sign is never constrained
        best = None
        for key in act_table.index:
            temp = window_values(act_table, ClimateWindow(*key), positions)
            tfit, _ = ols(y, {'climate': precip, 'temp': temp})
            if np.isnan(tfit.r_squared):
                continue
            if best is None or tfit.r_squared > best[2].r_squared:
                best = (ClimateWindow(*key), temp, tfit)

        if best is not None and best[2].coef_p('temp') < self.sig:
            temp_window, temp, tfit = best
            return ClimateSelection(
                window=window, precip=precip, fit=tfit,
                temp_window=temp_window, temp=temp,
            )

        # Temperature not significant: retest precipitation alone
        allow = self.allow_negative or self.allow_negative_retest
        window, fit = self._select_precip(y, acp_table, positions, allow, fallback_negative)
        return ClimateSelection(
            window=window, precip=window_values(acp_table, window, positions),
            fit=fit, retested=True,
        )

    def _select_precip(self, y, acp_table, positions, allow, fallback_negative):
        fits = window_fit_table(y, acp_table, positions)
        try:
            return select_window(fits, allow_negative=allow)
        except NoEligibleWindowError:
            if not fallback_negative:
                raise
            return select_window(fits, allow_negative=True)

    def cts_climate(self, veg, acp_table, act_table=None):
        """
        Selection over the complete monthly series. A negative best window is
        returned rather than raised so the caller can switch break detection
        to the raw series.
        """
        return self.choose(veg.values, acp_table, act_table, fallback_negative=True)

    def annual_climate(self, annual_veg, veg_index, acp_table, act_table=None):
        """Selection over the annual max VI, read at the peak positions."""
        return self.choose(annual_veg.values, acp_table, act_table, positions=veg_index)

    def segment_climate(self, annual_veg, veg_index, bp, acp_table, act_table=None):
        """
        Independent selections before and after a VPR breakpoint.
        bp: number of annual observations before the break.
        The returned rf_b4/rf_af span the whole annual series so the caller
        can slice them at the break.
        """
        y = np.asarray(annual_veg, dtype=float)
        veg_index = np.asarray(veg_index)

        before = self.choose(y[:bp], acp_table, act_table, positions=veg_index[:bp])
        after = self.choose(y[bp:], acp_table, act_table, positions=veg_index[bp:])

        tm_b4 = tm_af = None
        if before.temp_window is not None:
            tm_b4 = window_values(act_table, before.temp_window, veg_index)
        if after.temp_window is not None:
            tm_af = window_values(act_table, after.temp_window, veg_index)

        return SegmentClimate(
            rf_b4=window_values(acp_table, before.window, veg_index),
            rf_af=window_values(acp_table, after.window, veg_index),
            tm_b4=tm_b4,
            tm_af=tm_af,
            before=before,
            after=after,
        )
