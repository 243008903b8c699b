from __future__ import annotations

import pandas as pd

from .. import schema
from ._check import DesignCheck
from .balance import balance_pvalues

_ATTRITION_ALPHA = 0.001


def _check_attrition_independence(
    baseline: pd.DataFrame,
    responded: pd.Series,
    alpha: float = _ATTRITION_ALPHA,
) -> DesignCheck:
    """
    Compare endline responders with attriters on every covariate and on arm.

    Under missing-completely-at-random attrition, responding should be
    unrelated to anything measured at baseline. Bonferroni-corrected like the
    balance check.
    """
    name = "Attrition independence"
    n_lost = int((~responded).sum())
    if n_lost < 2:
        return DesignCheck(
            name=name, stage="attrition", passed=True, statistic=1.0, threshold=alpha,
            detail=f"{n_lost} subject(s) lost, nothing to compare",
        )

    data = baseline.assign(responded=responded.to_numpy())
    pvalues = balance_pvalues(data, "responded", covariates=(*schema.COVARIATES, "treatment"))
    k = len(pvalues)
    threshold = alpha / k
    worst = pvalues.idxmin()
    smallest = float(pvalues[worst])
    passed = smallest >= threshold

    if passed:
        detail = (
            f"{n_lost} lost; smallest p = {smallest:.4f} ({worst}; "
            f"Bonferroni threshold {threshold:.5f})"
        )
    else:
        bad = ", ".join(sorted(pvalues[pvalues < threshold].index))
        detail = (
            f"{n_lost} lost; attrition is associated with {bad} "
            f"(smallest p = {smallest:.2e})  Endline comparisons may be "
            f"biased by who dropped out."
        )
    return DesignCheck(
        name=name,
        stage="attrition",
        passed=passed,
        statistic=smallest,
        threshold=threshold,
        pvalue=min(1.0, smallest * k),
        values=pvalues.to_dict(),
        detail=detail,
    )
