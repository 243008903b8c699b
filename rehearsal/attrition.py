from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ._exceptions import ConfigurationError
from .config import AttritionConfig, retained_count

logger = logging.getLogger(__name__)


class AttritionModel:
    """
    Selects the subjects who answer the endline survey.

    The only policy is ``"mcar"``: a uniformly random subset, independent of
    covariates, arm and outcome. Exactly ``n * (1 - rate)`` subjects are kept,
    rounded to the nearest integer with halves rounded up.
    """

    def __init__(self, attrition: AttritionConfig) -> None:
        if attrition.policy != "mcar":
            raise ConfigurationError(f"Unsupported attrition policy {attrition.policy!r}")
        self._attrition = attrition

    @property
    def rate(self) -> float:
        return self._attrition.rate

    def retained_count(self, n: int) -> int:
        return retained_count(n, self._attrition.rate)

    def select(self, identifiers: pd.Index, rng: np.random.Generator) -> pd.Index:
        """
        Identifiers retained for the endline wave, in their baseline order.

        The result is always a subset of ``identifiers``.
        """
        n = len(identifiers)
        keep = self.retained_count(n)
        positions = np.sort(rng.choice(n, size=keep, replace=False))
        retained = identifiers[positions]
        logger.info(
            "Attrition (%s, rate %.3f): retained %d of %d subjects",
            self._attrition.policy, self._attrition.rate, keep, n,
        )
        return retained
