"""
Annual Series Builder
=====================
Reduces a complete monthly vegetation series to one observation per growing
season: the annual maximum, its absolute position in the monthly series and
its calendar month.
"""

from dataclasses import dataclass
import numpy as np
import pandas as pd


@dataclass(frozen=True)
class AnnualMax:
    values: pd.Series        # annual max VI, annual PeriodIndex
    index: np.ndarray        # 0-based position of each max in the monthly series
    peak_month: np.ndarray   # calendar month (1-12) of each max


def reduce_to_annual_max(monthly, exclude=()):
    """
    Input: monthly VI series (PeriodIndex, freq M) and the absolute positions
    masked from the peak search (sensor transitions).
    Output: AnnualMax. Incomplete leading/trailing years are dropped.
    """
    frame = pd.DataFrame({
        'value': np.asarray(monthly.values, dtype=float),
        'pos': np.arange(len(monthly)),
        'year': monthly.index.year,
        'month': monthly.index.month,
    })

    # Only complete calendar years count as a season
    complete = frame.groupby('year')['month'].transform('size') == 12
    frame = frame[complete]

    # Mask before reduction so an excluded month can never be the peak
    frame = frame[~frame['pos'].isin(list(exclude))]

    # idxmax keeps the first month on ties
    peaks = frame.loc[frame.groupby('year')['value'].idxmax()].sort_values('pos')

    values = pd.Series(
        peaks['value'].values,
        index=pd.PeriodIndex(peaks['year'].astype(str), freq='Y'),
        name=monthly.name,
    )
    return AnnualMax(
        values=values,
        index=peaks['pos'].to_numpy(),
        peak_month=peaks['month'].to_numpy(),
    )
