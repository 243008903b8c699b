from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from . import schema
from ._exceptions import ConfigurationError
from .config import PopulationConfig

logger = logging.getLogger(__name__)

LATENT_COLUMN = "vax_latent"


class CovariateSampler:
    """
    Draws the static attributes of each simulated subject.

    Categorical covariates are drawn independently from their configured
    weights; ``fb_usage`` and the latent willingness score are drawn from
    their bounded continuous specs. The latent score is returned as
    ``vax_latent`` and only becomes the reported ``vax_percpt`` once the
    outcome model projects it onto the survey scale.

    Every subject gets a unique, de-identified 5-digit identifier, and the
    returned frame is indexed by it so later stages join by key rather than
    by row position.

    Example::

        rng = np.random.default_rng(42)
        subjects = CovariateSampler(PopulationConfig()).sample(5_000, rng)
    """

    def __init__(self, population: PopulationConfig) -> None:
        if not isinstance(population, PopulationConfig):
            raise ConfigurationError("population must be a PopulationConfig")
        self._population = population

    @property
    def population(self) -> PopulationConfig:
        return self._population

    def sample(self, n: int, rng: np.random.Generator) -> pd.DataFrame:
        """
        Draw ``n`` subjects.

        Parameters
        ----------
        n : int
            Number of subjects.
        rng : numpy.random.Generator
            The shared generator; draws are consumed in a fixed order
            (identifiers, then covariates in schema order).

        Returns
        -------
        pd.DataFrame
            Indexed by ``identifier``, with one column per covariate and
            ``vax_latent`` in place of ``vax_percpt``.
        """
        max_n = 10 ** schema.ID_DIGITS - 10 ** (schema.ID_DIGITS - 1)
        if not 1 <= n <= max_n:
            raise ConfigurationError(f"n must lie in [1, {max_n}], got {n}")

        ids = rng.choice(max_n, size=n, replace=False) + 10 ** (schema.ID_DIGITS - 1)
        index = pd.Index([f"{i:0{schema.ID_DIGITS}d}" for i in ids], name="identifier")

        columns: dict[str, object] = {}
        for name in schema.CATEGORICAL_COVARIATES:
            spec = self._population.spec(name)
            codes = rng.choice(len(spec.levels), size=n, p=spec.probabilities)
            columns[name] = pd.Categorical.from_codes(codes, dtype=spec.dtype)

        columns["fb_usage"] = self._population.fb_usage.sample(rng, n)
        columns[LATENT_COLUMN] = self._population.vax_percpt.sample(rng, n)

        subjects = pd.DataFrame(columns, index=index)
        logger.info("Sampled covariates for %d subjects", n)
        return subjects
