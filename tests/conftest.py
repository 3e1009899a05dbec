import numpy as np
import pytest

from climate_window import climate_accumulator
from data_generator import generate_scenario, to_series


@pytest.fixture
def site():
    """Factory: (veg, precip, temp, acp_table, act_table) for a synthetic scenario."""

    def _build(scenario, with_temp=False, seed=7):
        df = generate_scenario(scenario, seed=seed)
        veg, precip, temp = to_series(df, scenario)
        acp_table = climate_accumulator(veg, precip)
        act_table = climate_accumulator(veg, temp) if with_temp else None
        return veg, precip, temp, acp_table, act_table

    return _build


@pytest.fixture
def repeated_annual():
    """
    Annual climate whose two halves repeat the same draws, together with a
    matching noise pattern. Any fit split at the midpoint sees identical
    data on both sides, so break terms absent from the signal come out
    exactly zero.
    """
    rng = np.random.default_rng(3)
    half = rng.uniform(200, 400, 10)
    noise = rng.normal(0, 0.005, 10)
    climate = np.concatenate([half, half])
    noise = np.concatenate([noise, noise])
    veg_index = np.arange(20) * 12 + 2
    return climate, noise, veg_index
