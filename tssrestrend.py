"""
TSS-RESTREND Engine
===================
Time Series Segmented Residual Trend analysis of a monthly vegetation index.

Pipeline:
    1. Validate the inputs (first failing check raises)
    2. Reduce the monthly VI to annual maxima
    3. Select the climate accumulation windows (complete series + annual)
    4. Detect breakpoints on the VPR residuals or, when the complete-series
       VPR is negative/insignificant, on the raw VI
    5. Chow test the candidates and pick the attribution method
    6. Compute total change (RESTREND / seg.RESTREND / seg.VPR)
    7. Sanity bound: a change larger than the VI range is coerced to zero
       with method InvalidValueError
"""

from dataclasses import dataclass, field, replace
import numpy as np
import pandas as pd

from annual_series import reduce_to_annual_max
from break_detection import BreakDetectionEngine
from change_attribution import ChangeAttributionEngine, ChangeResult
from chow_test import ChowTester, ChowOutcome, RESTREND, SEG_RESTREND, SEG_VPR
from climate_window import ClimateWindowEngine
from exceptions import InsufficientDataError, NoEligibleWindowError, ShapeMismatchError, ValidationError
from input_validation import check_series, check_aligned, check_positions, check_same_length, first_failure
from regression import ols, OLS_COLUMNS

ACUM_COLUMNS = [
    'CTSR_osp', 'CTSR_acp', 'CTSR_tosp', 'CTSR_tacp',
    'osp', 'acp', 'tosp', 'tacp',
    'osp_b4', 'acp_b4', 'tosp_b4', 'tacp_b4',
    'osp_af', 'acp_af', 'tosp_af', 'tacp_af',
]

CHOW_COLUMNS = ['abs_index', 'yr_index', 'year', 'reg_sig', 'vpr_bpsig', 'dummy_p']


@dataclass(frozen=True)
class TSSRResult:
    summary: ChangeResult
    ts_data: dict
    ols_summary: dict
    models: dict
    acum_df: pd.DataFrame
    bfast_method: str

    def summary_frame(self):
        row = self.summary.as_summary()
        row['BFAST_Method'] = self.bfast_method
        return pd.DataFrame([row])


@dataclass(frozen=True)
class ResultBuilder:
    """Collects the pieces of a TSSRResult; every add returns a new builder."""
    ts_data: dict = field(default_factory=dict)
    ols_rows: dict = field(default_factory=dict)
    models: dict = field(default_factory=dict)
    acum: dict = field(default_factory=lambda: {c: np.nan for c in ACUM_COLUMNS})

    def with_ts_data(self, **series):
        return replace(self, ts_data={**self.ts_data, **series})

    def with_ols(self, rows):
        return replace(self, ols_rows={**self.ols_rows, **rows})

    def with_models(self, models):
        return replace(self, models={**self.models, **models})

    def with_windows(self, selection, prefix='', suffix=''):
        """Record a selection as <prefix>osp/acp/tosp/tacp<suffix> in acum."""
        acum = dict(self.acum)
        acum[f'{prefix}osp{suffix}'] = selection.window.offset
        acum[f'{prefix}acp{suffix}'] = selection.window.accumulation
        if selection.temp_window is not None:
            acum[f'{prefix}tosp{suffix}'] = selection.temp_window.offset
            acum[f'{prefix}tacp{suffix}'] = selection.temp_window.accumulation
        return replace(self, acum=acum)

    def build(self, summary, chow, bfast_method):
        ols_table = pd.DataFrame.from_dict(self.ols_rows, orient='index', columns=OLS_COLUMNS)
        return TSSRResult(
            summary=summary,
            ts_data=dict(self.ts_data),
            ols_summary={
                'chow_sum': chow.chow_sum,
                'chow_ind': chow.chow_ind,
                'ols_table': ols_table,
            },
            models=dict(self.models),
            acum_df=pd.DataFrame([self.acum], columns=ACUM_COLUMNS),
            bfast_method=bfast_method,
        )


def _columns(climate, temp=None):
    columns = {'climate': np.asarray(climate, dtype=float)}
    if temp is not None:
        columns['temp'] = np.asarray(temp, dtype=float)
    return columns


class TSSRestrendEngine:
    def __init__(self, sig=0.05, season='none', exclude=(), allow_negative=False,
                 allow_negative_retest=False, h=0.15, retnonsig=False,
                 negative_scope='temperature', break_detector=None):
        self.sig = sig
        self.exclude = frozenset(int(e) for e in exclude)
        self.allow_negative = allow_negative
        self.retnonsig = retnonsig
        self.windows = ClimateWindowEngine(
            sig=sig,
            allow_negative=allow_negative,
            allow_negative_retest=allow_negative_retest,
            negative_scope=negative_scope,
        )
        self.detector = break_detector or BreakDetectionEngine(h=h, season=season)
        self.chow = ChowTester(sig=sig)
        self.attribution = ChangeAttributionEngine(sig=sig, retnonsig=retnonsig)

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------
    def _validate_inputs(self, veg, acp_table, act_table, climate, temp,
                         annual_veg, veg_index, rf_b4, rf_af, annual_climate):
        checks = [
            lambda: check_series('veg', veg, 'monthly'),
            lambda: (InsufficientDataError(
                "no climate data: provide acp_table, or climate together with annual_climate"
            ) if acp_table is None and climate is None else None),
            lambda: (ValidationError('climate', "cannot be combined with acp_table")
                     if acp_table is not None and climate is not None else None),
            lambda: (InsufficientDataError(
                "annual_climate is required when no acp_table is provided"
            ) if acp_table is None and annual_climate is None else None),
            lambda: (ValidationError('act_table', "requires acp_table")
                     if act_table is not None and acp_table is None else None),
        ]
        for name, table in (('acp_table', acp_table), ('act_table', act_table)):
            if table is not None:
                checks.append(lambda name=name, table=table: self._check_table(name, table, veg))
        for name, series in (('climate', climate), ('temp', temp)):
            if series is not None:
                checks.append(lambda name=name, series=series: check_series(name, series, 'monthly'))
                checks.append(lambda name=name, series=series: check_aligned(name, series, 'veg', veg))
        checks.append(lambda: (ValidationError('annual_veg/veg_index', "must be supplied together")
                               if (annual_veg is None) != (veg_index is None) else None))
        if annual_veg is not None and veg_index is not None:
            checks.append(lambda: check_series('annual_veg', annual_veg, 'annual'))
            checks.append(lambda: check_positions('veg_index', veg_index, len(annual_veg), len(veg)))
        if rf_b4 is not None or rf_af is not None:
            checks.append(lambda: (ShapeMismatchError('rf_b4/rf_af', "must be supplied together")
                                   if rf_b4 is None or rf_af is None else None))
            checks.append(lambda: check_same_length('rf_b4', rf_b4, 'rf_af', rf_af))
        first_failure(checks)

    @staticmethod
    def _check_table(name, table, veg):
        if not isinstance(table, pd.DataFrame):
            return ValidationError(name, "expected a DataFrame from climate_accumulator")
        if table.shape[1] != len(veg):
            return ValidationError(name, f"has {table.shape[1]} columns, veg has {len(veg)} months")
        if table.isna().to_numpy().any():
            return ValidationError(name, "contains missing values")
        return None

    def _validate_annual(self, annual_veg, annual_climate, annual_temp, rf_b4):
        checks = []
        for name, series in (('annual_climate', annual_climate), ('annual_temp', annual_temp)):
            if series is not None:
                checks.append(lambda name=name, series=series: check_series(name, series, 'annual'))
                checks.append(lambda name=name, series=series: check_aligned(name, series, 'annual_veg', annual_veg))
        if rf_b4 is not None:
            checks.append(lambda: check_same_length('rf_b4', rf_b4, 'annual_veg', annual_veg))
        first_failure(checks)

    # -----------------------------------------------------------------
    # Main entry point
    # -----------------------------------------------------------------
    def run(self, veg, acp_table=None, act_table=None, climate=None, temp=None,
            annual_veg=None, annual_climate=None, annual_temp=None, veg_index=None,
            rf_b4=None, rf_af=None):
        """
        Input: complete monthly VI plus either accumulation tables
        (acp_table, optional act_table) or an already accumulated monthly
        climate series with its annual counterpart.
        Output: TSSRResult.
        """
        self._validate_inputs(veg, acp_table, act_table, climate, temp,
                              annual_veg, veg_index, rf_b4, rf_af, annual_climate)
        builder = ResultBuilder()

        # 1. Annual max VI
        if annual_veg is None:
            peaks = reduce_to_annual_max(veg, self.exclude)
            annual_veg, veg_index = peaks.values, peaks.index
        veg_index = np.asarray(veg_index)

        # 2. Climate windows
        if acp_table is not None:
            cts = self.windows.cts_climate(veg, acp_table, act_table)
            builder = builder.with_windows(cts, prefix='CTSR_')
            cts_climate = pd.Series(cts.precip, index=veg.index, name='CTSR_RF')
            cts_temp = temp
            if cts_temp is None and cts.temp is not None:
                cts_temp = pd.Series(cts.temp, index=veg.index, name='CTSR_TM')
            cts_fit = cts.fit

            if annual_climate is None:
                annual = self.windows.annual_climate(annual_veg, veg_index, acp_table, act_table)
                builder = builder.with_windows(annual)
                annual_climate = pd.Series(annual.precip, index=annual_veg.index, name='acu_RF')
                if annual.temp is not None:
                    annual_temp = pd.Series(annual.temp, index=annual_veg.index, name='acu_TM')
            if act_table is not None:
                builder = builder.with_ts_data(CTSR_TMraw=pd.Series(
                    act_table.iloc[0].to_numpy(dtype=float), index=veg.index, name='CTSR_TMraw'))
        else:
            cts_climate = climate
            cts_temp = temp
            cts_fit, _ = ols(veg.values, _columns(climate, temp))

        self._validate_annual(annual_veg, annual_climate, annual_temp, rf_b4)

        # 3. Break detection runs on the raw VI when the complete-series VPR is unusable
        bf_raw = (not self.allow_negative and cts_fit.slope < 0) or not cts_fit.p_value <= self.sig
        detection = self.detector.detect(veg, cts_climate, cts_temp, raw=bf_raw)
        candidates = [int(b) for b in detection.bkps if int(b) not in self.exclude]

        # 4. Chow test
        if candidates:
            chow = self.chow.test(annual_veg, annual_climate, veg_index, candidates, annual_temp)
        else:
            chow = ChowOutcome(method=RESTREND, active=None, chow_ind=pd.DataFrame(columns=CHOW_COLUMNS))

        # 5. Total change
        if chow.method == RESTREND:
            attribution = self.attribution.restrend(annual_veg, annual_climate, veg_index, annual_temp)
        elif chow.method == SEG_RESTREND:
            attribution = self.attribution.seg_restrend(
                annual_veg, annual_climate, veg_index, chow.active.yr_index, annual_temp)
        elif chow.method == SEG_VPR:
            attribution, builder = self._seg_vpr(
                builder, chow.active.yr_index, annual_veg, annual_climate, annual_temp,
                veg_index, acp_table, act_table, rf_b4, rf_af)
        else:
            raise ValueError(f"Unknown method: {chow.method}")

        # 6. Sanity bound on the total change
        result = attribution.result
        veg_range = float(veg.max() - veg.min())
        if not np.isfinite(result.total_change) or abs(result.total_change) > veg_range:
            print("Non valid estimate produced, returning zero")
            result = result.invalidated()

        # 7. Assemble
        builder = builder.with_ts_data(
            CTSR_VI=veg,
            CTSR_RF=cts_climate,
            CTSR_TM=cts_temp,
            anu_VI=annual_veg,
            VI_index=veg_index,
            acu_RF=annual_climate,
            acu_TM=annual_temp,
            **attribution.ts_data,
        )
        builder = builder.with_ols({'CTS.fit': cts_fit.as_row(), **attribution.ols_rows})
        builder = builder.with_models({
            'CTS.fit': detection.cts_fit if detection.cts_fit is not None else cts_fit,
            'BFAST': detection,
            **attribution.models,
        })
        return builder.build(result, chow, detection.method)

    def _seg_vpr(self, builder, bp, annual_veg, annual_climate, annual_temp, veg_index,
                 acp_table, act_table, rf_b4, rf_af):
        tm_b4 = tm_af = None
        window_b4 = window_af = None

        if rf_b4 is None:
            if acp_table is not None:
                try:
                    seg = self.windows.segment_climate(annual_veg, veg_index, bp, acp_table, act_table)
                except NoEligibleWindowError:
                    print("No eligible climate window on one side of the break, using the annual window")
                    seg = None
                if seg is not None:
                    rf_b4, rf_af, tm_b4, tm_af = seg.rf_b4, seg.rf_af, seg.tm_b4, seg.tm_af
                    window_b4, window_af = seg.before.window, seg.after.window
                    builder = builder.with_windows(seg.before, suffix='_b4')
                    builder = builder.with_windows(seg.after, suffix='_af')
                    # Temperature insignificant on both sides is dropped from the segmented VPR
                    if tm_b4 is None and tm_af is None:
                        annual_temp = None
            if rf_b4 is None:
                rf_b4 = rf_af = np.asarray(annual_climate, dtype=float)

        attribution = self.attribution.seg_vpr(
            annual_veg, annual_climate, veg_index, bp, rf_b4, rf_af,
            annual_temp=annual_temp, tm_b4=tm_b4, tm_af=tm_af,
            window_b4=window_b4, window_af=window_af,
        )
        return attribution, builder
