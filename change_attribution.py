"""
Change Attribution Engine
=========================
Three mutually exclusive estimators of total vegetation change, picked by the
structural break test:

    - RESTREND:     no break. Annual VPR, residuals trended over time.
    - seg.RESTREND: break in the residuals. Same VPR, residuals fitted with a
                    piecewise trend (pre slope, break height, post slope).
    - seg.VPR:      break in the relationship. Climate standardised on either
                    side of the break, VPR refitted with a break dummy and
                    interaction; the height change is the gap between the two
                    fitted lines at mean climate.

Every component is zeroed when its own p-value fails the significance
threshold, unless retnonsig is set.
"""

from dataclasses import dataclass, field, replace
from typing import Optional
import numpy as np
from sklearn.preprocessing import StandardScaler

from chow_test import RESTREND, SEG_RESTREND, SEG_VPR
from climate_window import ClimateWindow
from regression import ols, linear_trend, contrast_p

INVALID = 'InvalidValueError'

SUMMARY_LABELS = {
    'method': 'Method',
    'total_change': 'Total_Change',
    'residual_change': 'Residual_Change',
    'vpr_height_change': 'VPR_HeightChange',
    'model_p': 'model_p',
    'residual_p': 'residual_p',
    'vprbreak_p': 'VPRbreak_p',
    'bp_year': 'bp_year',
}


@dataclass(frozen=True)
class ChangeResult:
    method: str
    total_change: float
    residual_change: float
    vpr_height_change: float
    model_p: float
    residual_p: float
    vprbreak_p: float
    bp_year: int

    def invalidated(self):
        """Copy coerced to the InvalidValueError state."""
        return replace(self, total_change=0.0, method=INVALID)

    def as_summary(self):
        return {label: getattr(self, name) for name, label in SUMMARY_LABELS.items()}


@dataclass(frozen=True)
class RestrendResult(ChangeResult):
    pass


@dataclass(frozen=True)
class SegRestrendResult(ChangeResult):
    pre_change: float = 0.0
    break_height: float = 0.0
    post_change: float = 0.0


@dataclass(frozen=True)
class SegVPRResult(ChangeResult):
    window_b4: Optional[ClimateWindow] = None
    window_af: Optional[ClimateWindow] = None


@dataclass(frozen=True)
class Attribution:
    result: ChangeResult
    models: dict = field(default_factory=dict)
    ols_rows: dict = field(default_factory=dict)
    ts_data: dict = field(default_factory=dict)


def _vpr_columns(climate, temp=None):
    columns = {'climate': np.asarray(climate, dtype=float)}
    if temp is not None:
        columns['temp'] = np.asarray(temp, dtype=float)
    return columns


def standardise_segments(before, after, reference):
    """
    Standardise each side of a break on its own, then rescale both to the
    mean and spread of the whole-series reference so the units stay
    comparable (StdVar).
    """
    reference = np.asarray(reference, dtype=float)
    parts = []
    for values in (before, after):
        values = np.asarray(values, dtype=float).reshape(-1, 1)
        parts.append(StandardScaler().fit_transform(values).ravel())
    z = np.concatenate(parts)
    return z * reference.std() + reference.mean()


class ChangeAttributionEngine:
    def __init__(self, sig=0.05, retnonsig=False):
        self.sig = sig
        self.retnonsig = retnonsig

    def _gate(self, value, p):
        if self.retnonsig or p < self.sig:
            return float(value)
        return 0.0

    def restrend(self, annual_veg, annual_climate, veg_index, annual_temp=None):
        """RESTREND: no breakpoint."""
        y = np.asarray(annual_veg, dtype=float)
        t = np.asarray(veg_index, dtype=float)

        vpr_fit, vpr_res = ols(y, _vpr_columns(annual_climate, annual_temp))
        r_fit, r_res = linear_trend(np.asarray(vpr_res.resid), t)

        residual_change = self._gate(r_fit.slope * (t[-1] - t[0]), r_fit.p_value)
        result = RestrendResult(
            method=RESTREND,
            total_change=residual_change,
            residual_change=residual_change,
            vpr_height_change=0.0,
            model_p=vpr_fit.p_value,
            residual_p=r_fit.p_value,
            vprbreak_p=0.0,
            bp_year=0,
        )
        return Attribution(
            result=result,
            models={'VPR.fit': vpr_res, 'RESTREND.fit': r_res},
            ols_rows={'VPR.fit': vpr_fit.as_row(), 'RESTREND.fit': r_fit.as_row()},
        )

    def seg_restrend(self, annual_veg, annual_climate, veg_index, bp, annual_temp=None):
        """
        seg.RESTREND: break in the VPR residuals.
        bp: number of annual observations before the break.
        """
        y = np.asarray(annual_veg, dtype=float)
        t = np.asarray(veg_index, dtype=float)
        n = len(y)

        vpr_fit, vpr_res = ols(y, _vpr_columns(annual_climate, annual_temp))
        resid = np.asarray(vpr_res.resid)

        # Piecewise trend: resid ~ t + D + D*(t - t_bp)
        t_bp = t[bp]
        dummy = (np.arange(n) >= bp).astype(float)
        seg_fit, seg_res = ols(resid, {
            'index': t,
            'dummy': dummy,
            'index_dummy': dummy * (t - t_bp),
        })

        pre_slope = float(seg_fit.params['index'])
        pre_change = self._gate(pre_slope * (t_bp - t[0]), seg_fit.coef_p('index'))

        break_height = float(seg_fit.params['dummy'])
        height_p = seg_fit.coef_p('dummy')
        break_height = self._gate(break_height, height_p)

        post_slope, post_p = contrast_p(seg_res, {'index': 1.0, 'index_dummy': 1.0})
        post_change = self._gate(post_slope * (t[-1] - t_bp), post_p)

        residual_change = pre_change + break_height + post_change
        result = SegRestrendResult(
            method=SEG_RESTREND,
            total_change=residual_change,
            residual_change=residual_change,
            vpr_height_change=0.0,
            model_p=vpr_fit.p_value,
            residual_p=seg_fit.p_value,
            vprbreak_p=height_p,
            bp_year=int(bp),
            pre_change=pre_change,
            break_height=break_height,
            post_change=post_change,
        )
        return Attribution(
            result=result,
            models={'VPR.fit': vpr_res, 'segRESTREND.fit': seg_res},
            ols_rows={'VPR.fit': vpr_fit.as_row(), 'segRESTREND.fit': seg_fit.as_row()},
        )

    def seg_vpr(self, annual_veg, annual_climate, veg_index, bp, rf_b4, rf_af,
                annual_temp=None, tm_b4=None, tm_af=None, window_b4=None, window_af=None):
        """
        seg.VPR: break in the vegetation/climate relationship.
        rf_b4/rf_af: annual climate under the pre/post-break windows, full length.
        """
        y = np.asarray(annual_veg, dtype=float)
        t = np.asarray(veg_index, dtype=float)
        n = len(y)
        rf_b4 = np.asarray(rf_b4, dtype=float)
        rf_af = np.asarray(rf_af, dtype=float)
        annual_climate = np.asarray(annual_climate, dtype=float)

        std_rf = standardise_segments(rf_b4[:bp], rf_af[bp:], annual_climate)
        dummy = (np.arange(n) >= bp).astype(float)
        columns = {'climate': std_rf, 'dummy': dummy, 'climate_dummy': std_rf * dummy}
        weights = {'dummy': 1.0, 'climate_dummy': float(annual_climate.mean())}

        std_tm = None
        if annual_temp is not None:
            annual_temp = np.asarray(annual_temp, dtype=float)
            tm_before = annual_temp if tm_b4 is None else np.asarray(tm_b4, dtype=float)
            tm_after = annual_temp if tm_af is None else np.asarray(tm_af, dtype=float)
            std_tm = standardise_segments(tm_before[:bp], tm_after[bp:], annual_temp)
            columns['temp'] = std_tm
            columns['temp_dummy'] = std_tm * dummy
            weights['temp_dummy'] = float(annual_temp.mean())

        vpr_fit, vpr_res = ols(y, columns)

        # Gap between the post and pre lines at mean climate
        height, height_p = contrast_p(vpr_res, weights)
        height_change = self._gate(height, height_p)

        r_fit, r_res = linear_trend(np.asarray(vpr_res.resid), t)
        residual_change = self._gate(r_fit.slope * (t[-1] - t[0]), r_fit.p_value)

        result = SegVPRResult(
            method=SEG_VPR,
            total_change=height_change + residual_change,
            residual_change=residual_change,
            vpr_height_change=height_change,
            model_p=vpr_fit.p_value,
            residual_p=r_fit.p_value,
            vprbreak_p=height_p,
            bp_year=int(bp),
            window_b4=window_b4,
            window_af=window_af,
        )
        ts_data = {'StdVar_RF': std_rf}
        if std_tm is not None:
            ts_data['StdVar_TM'] = std_tm
        return Attribution(
            result=result,
            models={'segVPR.fit': vpr_res, 'RESTREND.fit': r_res},
            ols_rows={'segVPR.fit': vpr_fit.as_row(), 'RESTREND.fit': r_fit.as_row()},
            ts_data=ts_data,
        )
