from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from . import schema
from ._exceptions import InvalidInputError
from .config import ComplianceConfig, ContinuousSpec

logger = logging.getLogger(__name__)


def _logit(p: float) -> float:
    return float(np.log(p / (1 - p)))


class ComplianceModel:
    """
    Whether a subject recalls seeing the ad for their arm.

    Control subjects were never shown an ad, so their awareness is always
    ``"No"``. A treated subject on arm ``a`` is aware with probability::

        expit(logit(awareness[a]) + usage_slope * u)

    where ``u`` is ``fb_usage`` rescaled to ``[-1, 1]`` over its configured
    range. Awareness is drawn after, and independently of, the outcome
    noise; it correlates with assignment by construction, which is what lets
    assignment serve as an instrument for awareness.
    """

    def __init__(self, compliance: ComplianceConfig, fb_usage: ContinuousSpec) -> None:
        self._compliance = compliance
        self._fb_usage = fb_usage

    def probability(self, treatment: pd.Series, fb_usage: pd.Series) -> pd.Series:
        """Awareness probability of every subject (zero for control)."""
        if not treatment.index.equals(fb_usage.index):
            raise InvalidInputError("treatment and fb_usage must share the same identifiers")
        arms = treatment.astype(str).to_numpy()
        unknown = set(arms) - set(schema.ARMS)
        if unknown:
            raise InvalidInputError(f"Unknown arm(s) in treatment: {sorted(unknown)}")

        half_range = (self._fb_usage.high - self._fb_usage.low) / 2.0
        usage = (fb_usage.to_numpy(dtype=float) - self._fb_usage.midpoint) / half_range

        logit = np.zeros(len(arms))
        for arm in schema.TREATED_ARMS:
            logit[arms == arm] = _logit(self._compliance.awareness[arm])
        prob = 1.0 / (1.0 + np.exp(-(logit + self._compliance.usage_slope * usage)))
        prob[arms == schema.CONTROL] = 0.0
        return pd.Series(prob, index=treatment.index, name="awareness_probability")

    def draw(
        self,
        treatment: pd.Series,
        fb_usage: pd.Series,
        rng: np.random.Generator,
    ) -> pd.Series:
        """
        Draw ``ad_awareness`` for every subject.

        One uniform draw is consumed per subject, control included, so the
        stream does not depend on how many subjects are treated.
        """
        prob = self.probability(treatment, fb_usage)
        aware = rng.random(len(prob)) < prob.to_numpy()
        awareness = pd.Series(
            pd.Categorical(
                np.where(aware, schema.AWARE, schema.NOT_AWARE), dtype=schema.AWARENESS_DTYPE,
            ),
            index=treatment.index,
            name="ad_awareness",
        )
        logger.info(
            "Drew ad awareness: %d of %d treated subjects aware",
            int(aware.sum()), int((treatment.astype(str) != schema.CONTROL).sum()),
        )
        return awareness
