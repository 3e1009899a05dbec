"""
Tests for change_attribution.py.

RESTREND, seg.RESTREND and seg.VPR on crafted annual data, the StdVar
rescaling and the significance gate.
"""

import numpy as np
import pytest

from change_attribution import (
    INVALID,
    ChangeAttributionEngine,
    RestrendResult,
    SegRestrendResult,
    SegVPRResult,
    standardise_segments,
)
from chow_test import RESTREND, SEG_RESTREND, SEG_VPR
from climate_window import ClimateWindow


@pytest.fixture
def trending_annual():
    rng = np.random.default_rng(17)
    climate = rng.uniform(200, 400, 20)
    veg_index = np.arange(20) * 12 + 2
    veg = 0.002 * climate + 0.001 * veg_index + rng.normal(0, 0.005, 20)
    return veg, climate, veg_index


class TestStandardiseSegments:

    def test_each_side_rescaled_to_reference(self):
        reference = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        out = standardise_segments([1.0, 2.0, 3.0], [10.0, 20.0, 30.0], reference)
        assert len(out) == 6
        assert out[:3].mean() == pytest.approx(reference.mean())
        assert out[3:].mean() == pytest.approx(reference.mean())
        assert out[:3].std() == pytest.approx(reference.std())
        assert np.allclose(out[:3], out[3:])


class TestGate:

    def test_insignificant_component_zeroed(self):
        assert ChangeAttributionEngine()._gate(1.5, 0.2) == 0.0

    def test_significant_component_kept(self):
        assert ChangeAttributionEngine()._gate(1.5, 0.01) == 1.5

    def test_retnonsig_keeps_everything(self):
        assert ChangeAttributionEngine(retnonsig=True)._gate(1.5, 0.9) == 1.5


class TestRestrend:

    def test_positive_residual_trend(self, trending_annual):
        veg, climate, veg_index = trending_annual
        attribution = ChangeAttributionEngine().restrend(veg, climate, veg_index)
        result = attribution.result
        assert isinstance(result, RestrendResult)
        assert result.method == RESTREND
        assert result.total_change > 0
        assert result.total_change == result.residual_change
        assert result.vpr_height_change == 0.0
        assert result.bp_year == 0
        assert set(attribution.models) == {"VPR.fit", "RESTREND.fit"}

    def test_change_is_slope_times_span(self, trending_annual):
        veg, climate, veg_index = trending_annual
        attribution = ChangeAttributionEngine(retnonsig=True).restrend(veg, climate, veg_index)
        slope = attribution.models["RESTREND.fit"].params["index"]
        assert attribution.result.residual_change == pytest.approx(slope * (veg_index[-1] - veg_index[0]))

    def test_non_significant_residual_suppressed(self):
        rng = np.random.default_rng(2)
        climate = rng.uniform(200, 400, 20)
        veg_index = np.arange(20) * 12 + 2
        veg = 0.002 * climate + rng.normal(0, 0.01, 20)

        gated = ChangeAttributionEngine().restrend(veg, climate, veg_index).result
        kept = ChangeAttributionEngine(retnonsig=True).restrend(veg, climate, veg_index)
        slope = kept.models["RESTREND.fit"].params["index"]
        expected = slope * (veg_index[-1] - veg_index[0])

        assert kept.result.residual_change == pytest.approx(expected)
        if gated.residual_p < 0.05:
            assert gated.residual_change == pytest.approx(expected)
        else:
            assert gated.residual_change == 0.0


class TestSegRestrend:

    def test_residual_break_height(self, repeated_annual):
        climate, noise, veg_index = repeated_annual
        dummy = (np.arange(20) >= 10).astype(float)
        veg = 0.002 * climate + noise - 0.1 * dummy

        result = ChangeAttributionEngine().seg_restrend(veg, climate, veg_index, 10).result
        assert isinstance(result, SegRestrendResult)
        assert result.method == SEG_RESTREND
        assert result.bp_year == 10
        assert result.break_height < 0
        assert result.residual_change == pytest.approx(
            result.pre_change + result.break_height + result.post_change
        )
        assert result.total_change == result.residual_change
        assert result.vprbreak_p < 0.05


class TestSegVPR:

    def test_height_change_at_mean_climate(self, repeated_annual):
        climate, noise, veg_index = repeated_annual
        dummy = (np.arange(20) >= 10).astype(float)
        veg = (0.002 + 0.003 * dummy) * climate + noise
        window_b4, window_af = ClimateWindow(0, 3), ClimateWindow(1, 2)

        attribution = ChangeAttributionEngine().seg_vpr(
            veg, climate, veg_index, 10, climate, climate,
            window_b4=window_b4, window_af=window_af,
        )
        result = attribution.result
        assert isinstance(result, SegVPRResult)
        assert result.method == SEG_VPR
        assert result.vpr_height_change == pytest.approx(0.003 * climate.mean(), rel=0.05)
        assert result.total_change == pytest.approx(result.vpr_height_change + result.residual_change)
        assert result.window_b4 == window_b4
        assert result.window_af == window_af
        assert len(attribution.ts_data["StdVar_RF"]) == 20
        assert "StdVar_TM" not in attribution.ts_data

    def test_temperature_terms_reported(self, repeated_annual):
        climate, noise, veg_index = repeated_annual
        temp = np.concatenate([np.linspace(18, 22, 10), np.linspace(18, 22, 10)])
        dummy = (np.arange(20) >= 10).astype(float)
        veg = (0.002 + 0.003 * dummy) * climate + 0.01 * temp + noise

        attribution = ChangeAttributionEngine().seg_vpr(
            veg, climate, veg_index, 10, climate, climate, annual_temp=temp,
        )
        assert "StdVar_TM" in attribution.ts_data
        assert "temp_dummy" in attribution.models["segVPR.fit"].params.index


class TestInvalidated:

    def test_coerced_copy(self):
        result = RestrendResult(
            method=RESTREND, total_change=3.0, residual_change=3.0, vpr_height_change=0.0,
            model_p=0.01, residual_p=0.01, vprbreak_p=0.0, bp_year=0,
        )
        invalid = result.invalidated()
        assert invalid.method == INVALID
        assert invalid.total_change == 0.0
        assert invalid.residual_change == 3.0
        assert result.method == RESTREND
