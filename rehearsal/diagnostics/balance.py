from __future__ import annotations

import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from .. import schema
from ._check import DesignCheck

_BALANCE_ALPHA = 0.001


def _association_pvalue(data: pd.DataFrame, covariate: str, group: str) -> float:
    """
    p-value for ``H0: covariate is independent of group``.

    Categorical covariates use a chi-square test of the contingency table
    (observed levels only); numeric covariates use the overall F-test of an
    OLS regression of the covariate on group dummies.
    """
    if isinstance(data[covariate].dtype, pd.CategoricalDtype):
        table = pd.crosstab(data[covariate].astype(str), data[group].astype(str))
        if table.shape[0] < 2 or table.shape[1] < 2:
            return 1.0
        return float(sm.stats.Table(table).test_nominal_association().pvalue)

    frame = pd.DataFrame({
        "y": data[covariate].astype(float),
        "g": data[group].astype(str),
    })
    if frame["g"].nunique() < 2 or frame["y"].nunique() < 2:
        return 1.0
    return float(smf.ols("y ~ C(g)", data=frame).fit().f_pvalue)


def balance_pvalues(data: pd.DataFrame, group: str, covariates=schema.COVARIATES) -> pd.Series:
    """Association p-value of each covariate with ``group``."""
    return pd.Series(
        {c: _association_pvalue(data, c, group) for c in covariates if c in data.columns},
        name="pvalue",
    )


def _check_covariate_balance(
    data: pd.DataFrame,
    label: str,
    alpha: float = _BALANCE_ALPHA,
) -> DesignCheck:
    """
    Test every covariate for association with the assigned arm.

    Under (blocked) random assignment no covariate should predict the arm.
    Uses a Bonferroni correction across covariates, so the check fails only
    when the smallest p-value is below ``alpha / k``. ``label`` is the table
    checked, ``"baseline"`` or ``"endline"``.
    """
    pvalues = balance_pvalues(data, "treatment")
    k = len(pvalues)
    threshold = alpha / k
    worst = pvalues.idxmin()
    smallest = float(pvalues[worst])
    passed = smallest >= threshold

    if passed:
        detail = (
            f"{k} covariates, smallest p = {smallest:.4f} "
            f"({worst}; Bonferroni threshold {threshold:.5f})"
        )
    else:
        bad = ", ".join(sorted(pvalues[pvalues < threshold].index))
        detail = (
            f"imbalanced on {bad} (smallest p = {smallest:.2e}, "
            f"threshold {threshold:.5f})  Assignment is associated with "
            f"covariates, check the blocking and randomisation."
        )
    return DesignCheck(
        name=f"Covariate balance ({label})",
        stage=label,
        passed=passed,
        statistic=smallest,
        threshold=threshold,
        pvalue=min(1.0, smallest * k),
        values=pvalues.to_dict(),
        detail=detail,
    )
