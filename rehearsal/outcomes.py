from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from . import schema
from ._exceptions import InvalidInputError
from .config import EffectConfig, SurveyScale

logger = logging.getLogger(__name__)


def potential_outcome_column(arm: str) -> str:
    return f"y_{arm}"


class PotentialOutcomeModel:
    """
    The ground-truth causal model for the willingness score.

    For a subject with reported baseline score ``b`` assigned to arm ``a``::

        new = b + main_effect(a) + interaction_effect(a, b) + noise

    where ``main_effect("control") = 0``, the interaction is
    ``slope(a) * (b - scale.low)`` (zero for control) and ``noise`` is a
    mean-zero normal draw per subject. The result is projected back onto the
    survey scale.

    Because the noise draw is shared across arms, evaluating the model for
    all three arms gives each subject's full set of potential outcomes, of
    which only the assigned one is observed.
    """

    def __init__(self, effects: EffectConfig, scale: SurveyScale) -> None:
        self._effects = effects
        self._scale = scale

    @property
    def scale(self) -> SurveyScale:
        return self._scale

    # ── Pure model terms ──────────────────────────────────────────────────────

    def _check_arm(self, arm: str) -> None:
        if arm not in schema.ARMS:
            raise InvalidInputError(f"Unknown arm {arm!r}; expected one of {list(schema.ARMS)}")

    def _check_scores(self, scores) -> np.ndarray:
        scores = np.asarray(scores, dtype=float)
        if np.isnan(scores).any():
            raise InvalidInputError("Baseline scores contain NaN")
        if not self._scale.contains(scores):
            raise InvalidInputError(
                f"Baseline scores must lie on the survey scale "
                f"[{self._scale.low}, {self._scale.high}]; got range "
                f"[{scores.min()}, {scores.max()}]"
            )
        return scores

    def main_effect(self, arm: str) -> float:
        """Shift in the score from being assigned ``arm``, relative to control."""
        self._check_arm(arm)
        if arm == schema.CONTROL:
            return 0.0
        return float(self._effects.main_effects[arm])

    def interaction_effect(self, arm: str, baseline) -> np.ndarray:
        """Baseline-dependent part of the effect; zero for control."""
        self._check_arm(arm)
        baseline = self._check_scores(baseline)
        if arm == schema.CONTROL:
            return np.zeros_like(baseline)
        return self._effects.interactions[arm] * (baseline - self._scale.low)

    def treatment_effect(self, arm: str, baseline) -> np.ndarray:
        """Latent (unclipped) effect of ``arm`` for subjects with the given baseline scores."""
        return self.main_effect(arm) + self.interaction_effect(arm, baseline)

    def outcome(self, arm: str, baseline, noise=0.0) -> np.ndarray:
        """Post-treatment score on the survey scale for the given noise draw(s)."""
        baseline = self._check_scores(baseline)
        return self._scale.project(baseline + self.treatment_effect(arm, baseline) + noise)

    # ── Passes over the population ────────────────────────────────────────────

    def baseline(self, latent: pd.Series, rng: np.random.Generator) -> pd.Series:
        """
        Reported baseline ``vax_percpt``: the latent attitude plus optional
        measurement noise, projected onto the survey scale.

        No draws are consumed when ``baseline_noise_sd`` is zero.
        """
        values = latent.to_numpy(dtype=float)
        if self._effects.baseline_noise_sd > 0:
            values = values + rng.normal(0.0, self._effects.baseline_noise_sd, len(values))
        reported = pd.Series(self._scale.project(values), index=latent.index, name="vax_percpt")
        logger.info("Baseline pass: mean vax_percpt %.3f", reported.mean())
        return reported

    def endline(
        self,
        baseline: pd.Series,
        treatment: pd.Series,
        rng: np.random.Generator,
    ) -> pd.DataFrame:
        """
        Evaluate every potential outcome and pick the realised one.

        Parameters
        ----------
        baseline : pd.Series
            Reported baseline scores, indexed by identifier.
        treatment : pd.Series
            Assigned arms for the same identifiers.
        rng : numpy.random.Generator
            One noise draw is consumed per subject, in the order of ``baseline``.

        Returns
        -------
        pd.DataFrame
            Indexed by identifier, with ``y_control``, ``y_logos``, ``y_pathos``
            and the realised ``new_vax_percpt``.

        Raises
        ------
        ``InvalidInputError``
            If identifiers do not match, a score is off the scale or an arm is unknown.
        """
        if not baseline.index.equals(treatment.index):
            raise InvalidInputError("Baseline scores and treatment must share the same identifiers")
        unknown = set(treatment.astype(str).unique()) - set(schema.ARMS)
        if unknown:
            raise InvalidInputError(f"Unknown arm(s) in treatment: {sorted(unknown)}")

        scores = self._check_scores(baseline.to_numpy(dtype=float))
        noise = rng.normal(0.0, self._effects.noise_sd, len(scores))

        potential = pd.DataFrame(
            {potential_outcome_column(arm): self.outcome(arm, scores, noise) for arm in schema.ARMS},
            index=baseline.index,
        )
        arms = treatment.astype(str).to_numpy()
        realised = np.select(
            [arms == arm for arm in schema.ARMS],
            [potential[potential_outcome_column(arm)].to_numpy() for arm in schema.ARMS],
        )
        potential["new_vax_percpt"] = realised
        logger.info("Endline pass: evaluated potential outcomes for %d subjects", len(potential))
        return potential
