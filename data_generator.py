import numpy as np
import pandas as pd

# Months of climate needed before the first VI month (max_acp + max_osp - 1)
LEAD_IN = 15

SCENARIOS = {
    'RESTREND': {'n_years': 30, 'trend': -0.003, 'shift': 0.0, 'shift_year': None,
                 'sens_after': 1.0, 'sens_year': None},
    'seg.RESTREND': {'n_years': 30, 'trend': 0.0, 'shift': -0.12, 'shift_year': 15,
                     'sens_after': 1.0, 'sens_year': None},
    'seg.VPR': {'n_years': 20, 'trend': 0.0, 'shift': 0.0, 'shift_year': None,
                'sens_after': 2.5, 'sens_year': 10},
}


def generate_scenario(scenario='RESTREND', start_year=1982, seed=42, noise=0.01):
    """
    Generates one synthetic site: monthly precipitation and temperature with a
    LEAD_IN month run-up, and a monthly VI driven by 3-month precipitation
    accumulated up to the previous month.

    Scenarios:
    1. RESTREND: slow linear degradation, no break
    2. seg.RESTREND: level drop in the VI at year 15 of 30
    3. seg.VPR: rainfall sensitivity jumps at year 10 of 20
    """
    np.random.seed(seed)
    cfg = SCENARIOS[scenario]
    n_months = cfg['n_years'] * 12

    dates = pd.period_range(f"{start_year}-01", periods=n_months, freq='M')
    clim_dates = pd.period_range(dates[0] - LEAD_IN, periods=n_months + LEAD_IN, freq='M')

    # Summer-dominant rainfall, gamma distributed around the seasonal mean
    cycle = np.cos(2 * np.pi * (np.asarray(clim_dates.month) - 1) / 12)
    rain_mean = 60 + 45 * cycle
    precip = np.random.gamma(4.0, rain_mean / 4.0)
    temp = 20 + 6 * cycle + np.random.normal(0, 1.0, len(clim_dates))

    precip = pd.Series(precip, index=clim_dates, name='Precip')
    acc = precip.rolling(3).sum().shift(1).reindex(dates).to_numpy()

    years = np.arange(n_months) // 12
    sens = np.full(n_months, 1.0)
    if cfg['sens_year'] is not None:
        sens[years >= cfg['sens_year']] = cfg['sens_after']

    veg = 0.15 + sens * acc / 1500.0
    veg = veg + cfg['trend'] * years
    if cfg['shift_year'] is not None:
        veg[years >= cfg['shift_year']] += cfg['shift']
    veg = veg + np.random.normal(0, noise, n_months)

    df = pd.DataFrame({
        'Date': clim_dates.astype(str),
        'Scenario': scenario,
        'Precip': precip.to_numpy(),
        'Temp': temp,
        'VI': pd.Series(veg, index=dates).reindex(clim_dates).to_numpy(),
    })
    return df


def generate_synthetic_data(scenarios=None, seed=42):
    """Stacks every scenario into one long frame (Date, Scenario, Precip, Temp, VI)."""
    scenarios = scenarios or list(SCENARIOS)
    frames = [generate_scenario(name, seed=seed + i) for i, name in enumerate(scenarios)]
    return pd.concat(frames, ignore_index=True)


def to_series(df, scenario):
    """Split one scenario of the long frame into (veg, precip, temp) monthly series."""
    site = df[df['Scenario'] == scenario]
    index = pd.PeriodIndex(site['Date'], freq='M')
    precip = pd.Series(site['Precip'].to_numpy(dtype=float), index=index, name='Precip')
    temp = pd.Series(site['Temp'].to_numpy(dtype=float), index=index, name='Temp')
    veg = pd.Series(site['VI'].to_numpy(dtype=float), index=index, name='VI').dropna()
    return veg, precip, temp


if __name__ == "__main__":
    print("Generating synthetic data...")
    df = generate_synthetic_data()
    print(f"Generated {len(df)} rows for {df['Scenario'].nunique()} scenarios.")
    print("Sample:\n", df.dropna().head())

    df.to_csv("synthetic_vi_climate.csv", index=False)
    print("\nSaved to synthetic_vi_climate.csv")
