from __future__ import annotations

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf

from .. import schema
from ._check import DesignCheck

_ITT_TOLERANCE_SE = 3.0
_FIRST_STAGE_F_THRESHOLD = 10.0


def _arm_dummies(endline: pd.DataFrame) -> pd.DataFrame:
    data = pd.DataFrame(index=endline.index)
    for arm in schema.TREATED_ARMS:
        data[f"arm_{arm}"] = (endline["treatment"].astype(str) == arm).astype(float)
    return data


def _aware(endline: pd.DataFrame) -> pd.Series:
    return (endline["ad_awareness"].astype(str) == schema.AWARE).astype(float)


def estimate_itt(endline: pd.DataFrame):
    """
    OLS of the baseline-to-endline change on arm dummies (control omitted).

    Differencing out the baseline score is the two-wave
    difference-in-differences estimate of each arm's ITT.
    """
    data = _arm_dummies(endline)
    data["change"] = endline["new_vax_percpt"].astype(float) - endline["vax_percpt"].astype(float)
    rhs = " + ".join(data.columns.drop("change"))
    return smf.ols(f"change ~ {rhs}", data=data).fit()


def _check_itt_recovery(
    endline: pd.DataFrame,
    true_itt: dict[str, float],
    tolerance: float = _ITT_TOLERANCE_SE,
) -> DesignCheck:
    """
    Re-estimate each arm's ITT and compare it with the ground truth.

    The truth is the mean difference between each retained subject's
    potential outcome under the arm and under control, so an unbiased
    estimator should land within a few standard errors of it. The
    statistic is the largest gap in standard errors across arms; the
    p-value is the smallest of the per-arm tests of ``estimate == truth``.
    """
    fit = estimate_itt(endline)
    estimates, gaps, pvalues, parts = {}, {}, [], []
    for arm in schema.TREATED_ARMS:
        term = f"arm_{arm}"
        est = float(fit.params[term])
        gap = abs(est - true_itt[arm]) / float(fit.bse[term])
        restriction = (fit.params.index == term).astype(float)[None, :]
        test = fit.t_test((restriction, np.array([true_itt[arm]])))
        estimates[arm] = est
        gaps[arm] = gap
        pvalues.append(float(np.squeeze(test.pvalue)))
        parts.append(f"{arm} {est:.3f} vs true {true_itt[arm]:.3f} (gap {gap:.1f} SE)")

    worst = max(gaps.values())
    passed = worst <= tolerance
    detail = "; ".join(parts)
    if not passed:
        detail += (
            f"  An estimate is more than {tolerance:.0f} SE from the truth. The "
            f"sample may be too small for the configured noise."
        )
    return DesignCheck(
        name="ITT recovery",
        stage="effects",
        passed=passed,
        statistic=worst,
        threshold=tolerance,
        pvalue=min(pvalues),
        values=estimates,
        detail=detail,
    )


def _check_effect_ordering(endline: pd.DataFrame, true_itt: dict[str, float]) -> DesignCheck:
    """
    Check that the mean baseline-to-endline change ranks the arms the way
    the true effects do (control counted as an effect of zero).

    The statistic is the smallest margin between neighbours in the true
    order; it must be positive.
    """
    change = endline["new_vax_percpt"].astype(float) - endline["vax_percpt"].astype(float)
    means = change.groupby(endline["treatment"].astype(str)).mean()
    means = {a: float(means.get(a, np.nan)) for a in schema.ARMS}
    truth = {schema.CONTROL: 0.0, **true_itt}
    expected = sorted(schema.ARMS, key=lambda a: truth[a], reverse=True)
    margin = float(np.min([means[hi] - means[lo] for hi, lo in zip(expected, expected[1:])]))

    passed = bool(margin > 0)
    shown = ", ".join(f"{a} {means[a]:.3f}" for a in sorted(means, key=means.get, reverse=True))
    if passed:
        detail = f"mean change: {shown}"
    else:
        detail = (
            f"mean change: {shown}; expected order {' > '.join(expected)}  "
            f"The sample cannot distinguish the configured effects."
        )
    return DesignCheck(
        name="Effect ordering",
        stage="effects",
        passed=passed,
        statistic=margin,
        threshold=0.0,
        values=means,
        detail=detail,
    )


def _check_one_sided_awareness(endline: pd.DataFrame) -> DesignCheck:
    """No control subject can recall an ad that was never shown to them."""
    aware = _aware(endline)
    rates = aware.groupby(endline["treatment"].astype(str)).mean()
    rates = {a: float(rates.get(a, 0.0)) for a in schema.ARMS}
    n_control_aware = int(aware[endline["treatment"].astype(str) == schema.CONTROL].sum())

    passed = n_control_aware == 0
    detail = f"control awareness {rates[schema.CONTROL]:.1%}"
    if not passed:
        detail += (
            f" ({n_control_aware} subjects)  Control subjects report an ad they "
            f"were never shown."
        )
    return DesignCheck(
        name="One-sided awareness",
        stage="endline",
        passed=passed,
        statistic=rates[schema.CONTROL],
        threshold=0.0,
        values=rates,
        detail=detail,
    )


def _check_awareness_first_stage(
    endline: pd.DataFrame,
    threshold: float = _FIRST_STAGE_F_THRESHOLD,
) -> DesignCheck:
    """
    Regress ad awareness on arm dummies and compute the joint F-statistic.

    Assignment is the instrument for awareness in a LATE analysis; the
    conventional weak-instrument threshold is F < 10 (Stock & Yogo, 2005).
    """
    data = _arm_dummies(endline)
    data["aware"] = _aware(endline)
    terms = list(data.columns.drop("aware"))
    fit = smf.ols(f"aware ~ {' + '.join(terms)}", data=data).fit()
    test = fit.f_test(", ".join(f"{t} = 0" for t in terms))
    f_stat = float(np.squeeze(test.fvalue))

    passed = f_stat >= threshold
    if passed:
        detail = f"F = {f_stat:.2f}  (threshold: F ≥ {threshold:.0f})"
    else:
        detail = (
            f"F = {f_stat:.2f}  (threshold: F ≥ {threshold:.0f})  "
            f"Assignment barely moves awareness; an IV estimate of the effect "
            f"of awareness would rest on a weak instrument."
        )
    return DesignCheck(
        name="Awareness first stage",
        stage="effects",
        passed=passed,
        statistic=f_stat,
        threshold=threshold,
        pvalue=float(np.squeeze(test.pvalue)),
        values={arm: float(fit.params[f"arm_{arm}"]) for arm in schema.TREATED_ARMS},
        detail=detail,
    )
