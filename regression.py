"""
Least squares helpers shared by every model in the package.

All regressions go through statsmodels OLS so coefficient p-values, overall
F-test p-values and contrast tests come from one place. A fit is summarised
into an immutable RegressionFit; the raw statsmodels results object is kept
alongside for the models bin of the final result.
"""

from dataclasses import dataclass
import numpy as np
import pandas as pd
import statsmodels.api as sm
import warnings

# Small annual samples trigger normality-test and divide warnings in statsmodels
warnings.filterwarnings("ignore")

OLS_COLUMNS = ['slope', 'intercept', 'p_value', 'r_squared']


@dataclass(frozen=True)
class RegressionFit:
    params: pd.Series
    pvalues: pd.Series
    p_value: float
    rse: float
    r_squared: float
    nobs: int

    @property
    def intercept(self):
        return float(self.params.get('const', np.nan))

    @property
    def slope(self):
        # First non-constant regressor
        for name, value in self.params.items():
            if name != 'const':
                return float(value)
        return np.nan

    def coef_p(self, name):
        return float(self.pvalues.get(name, np.nan))

    def as_row(self):
        return {
            'slope': self.slope,
            'intercept': self.intercept,
            'p_value': self.p_value,
            'r_squared': self.r_squared,
        }


def summarise(results):
    """Freeze a statsmodels results object into a RegressionFit."""
    return RegressionFit(
        params=results.params.copy(),
        pvalues=results.pvalues.copy(),
        p_value=float(results.f_pvalue) if results.df_model > 0 else np.nan,
        rse=float(np.sqrt(results.scale)),
        r_squared=float(results.rsquared),
        nobs=int(results.nobs),
    )


def design(columns):
    """
    Build an exog matrix with a leading constant.
    columns: mapping of regressor name -> 1-D array-like (order preserved)
    """
    frame = pd.DataFrame({k: np.asarray(v, dtype=float) for k, v in columns.items()})
    return sm.add_constant(frame, has_constant='add')


def ols(y, columns):
    """
    Fit y ~ const + columns.
    Returns (RegressionFit, statsmodels results).
    """
    y = np.asarray(y, dtype=float)
    exog = design(columns)
    results = sm.OLS(y, exog).fit()
    return summarise(results), results


def linear_trend(y, positions):
    """Trend of y against (monthly) positions, the RESTREND residual fit."""
    return ols(y, {'index': positions})


def contrast_p(results, weights):
    """
    Two-sided p-value and estimate of a linear combination of coefficients.
    weights: mapping of coefficient name -> weight
    """
    vector = np.zeros(len(results.params))
    for i, name in enumerate(results.params.index):
        vector[i] = weights.get(name, 0.0)
    test = results.t_test(vector)
    return float(np.squeeze(test.effect)), float(np.squeeze(test.pvalue))
