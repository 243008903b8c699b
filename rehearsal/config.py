"""
Configuration objects for a simulated experiment.

Every object here is a frozen dataclass validated on construction, so a bad
parameter is reported (as a ``ConfigurationError`` naming the parameter)
before a single random number is drawn. Defaults reproduce a three-arm
vaccine-messaging experiment on a sample of US adults::

    config = ExperimentConfig(n=5_000, seed=42)
    config = ExperimentConfig.from_dict({"n": 1_000, "attrition": {"rate": 0.2}})
"""
from __future__ import annotations

import logging
import math
import types
from collections.abc import Mapping
from dataclasses import dataclass, field, fields

import numpy as np
import pandas as pd

from . import schema
from ._exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_FAMILIES = ("normal", "beta")
_SMALL_BLOCK_POLICIES = ("raise", "pool")
_ATTRITION_POLICIES = ("mcar",)
_MAX_N = 10 ** schema.ID_DIGITS - 10 ** (schema.ID_DIGITS - 1)


def retained_count(n: int, rate: float) -> int:
    """``n * (1 - rate)`` rounded to the nearest integer, halves rounded up."""
    return int(math.floor(n * (1 - rate) + 0.5))


def _finite(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return float(value)


def _check_keys(mapping: Mapping, allowed, name: str) -> None:
    unknown = sorted(set(mapping) - set(allowed))
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in {name}: {unknown}. Recognised keys: {sorted(allowed)}"
        )


def _build(kind, mapping, name: str):
    if not isinstance(mapping, Mapping):
        raise ConfigurationError(f"{name} must be a mapping, got {mapping!r}")
    _check_keys(mapping, [f.name for f in fields(kind)], name)
    try:
        return kind(**mapping)
    except TypeError as exc:
        raise ConfigurationError(f"{name}: {exc}") from exc


def _check_arm_mapping(mapping: Mapping, name: str) -> None:
    if not isinstance(mapping, Mapping):
        raise ConfigurationError(f"{name} must be a mapping of arm → value, got {mapping!r}")
    if schema.CONTROL in mapping:
        raise ConfigurationError(
            f"{name} must not set '{schema.CONTROL}': the control arm is the "
            f"reference and its effect is fixed at 0."
        )
    _check_keys(mapping, schema.TREATED_ARMS, name)
    missing = [arm for arm in schema.TREATED_ARMS if arm not in mapping]
    if missing:
        raise ConfigurationError(f"{name} is missing arm(s): {missing}")
    for arm in schema.TREATED_ARMS:
        _finite(mapping[arm], f"{name}.{arm}")


def _frozen_arm_mapping(mapping: Mapping, name: str) -> Mapping[str, float]:
    """Validate an arm → value mapping and return a read-only copy of it."""
    _check_arm_mapping(mapping, name)
    return types.MappingProxyType({arm: float(mapping[arm]) for arm in schema.TREATED_ARMS})


def check_seed(seed, name: str = "seed") -> None:
    """Raise ``ConfigurationError`` unless ``seed`` is a non-negative integer or ``None``."""
    if seed is not None and (
        isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0
    ):
        raise ConfigurationError(f"{name} must be a non-negative integer or None, got {seed!r}")


# ── Distribution specs ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CategoricalSpec:
    """Levels of a categorical covariate and the weights they are drawn with."""

    levels: tuple[str, ...]
    weights: tuple[float, ...]
    ordered: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", tuple(self.levels))
        object.__setattr__(self, "weights", tuple(self.weights))

    def validate(self, name: str) -> None:
        if not self.levels:
            raise ConfigurationError(f"{name}.levels is empty")
        if len(set(self.levels)) != len(self.levels):
            raise ConfigurationError(f"{name}.levels contains duplicates: {list(self.levels)}")
        if len(self.weights) != len(self.levels):
            raise ConfigurationError(
                f"{name}.weights has {len(self.weights)} entries but there are "
                f"{len(self.levels)} levels"
            )
        for i, w in enumerate(self.weights):
            if _finite(w, f"{name}.weights[{i}]") < 0:
                raise ConfigurationError(f"{name}.weights[{i}] is negative ({w})")
        if sum(self.weights) <= 0:
            raise ConfigurationError(f"{name}.weights must sum to a positive total")

    @property
    def probabilities(self) -> np.ndarray:
        w = np.asarray(self.weights, dtype=float)
        return w / w.sum()

    @property
    def dtype(self) -> pd.CategoricalDtype:
        return schema.categorical_dtype(self.levels, ordered=self.ordered)


@dataclass(frozen=True)
class ContinuousSpec:
    """
    A bounded numeric covariate.

    ``family="normal"`` takes ``params=(mean, sd)`` and clips draws to
    ``[low, high]``; ``family="beta"`` takes ``params=(a, b)`` and rescales
    draws onto ``[low, high]``. Draws are rounded to ``decimals`` places
    when it is set (``0`` gives whole numbers).
    """

    family: str
    params: tuple[float, float]
    low: float
    high: float
    decimals: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", tuple(self.params))

    def validate(self, name: str) -> None:
        if self.family not in _FAMILIES:
            raise ConfigurationError(
                f"{name}.family must be one of {list(_FAMILIES)}, got {self.family!r}"
            )
        if len(self.params) != 2:
            raise ConfigurationError(f"{name}.params must have two values, got {self.params!r}")
        p0 = _finite(self.params[0], f"{name}.params[0]")
        p1 = _finite(self.params[1], f"{name}.params[1]")
        if self.family == "normal" and p1 <= 0:
            raise ConfigurationError(f"{name}.params[1] (sd) must be positive, got {p1}")
        if self.family == "beta" and (p0 <= 0 or p1 <= 0):
            raise ConfigurationError(f"{name}.params (a, b) must both be positive, got {self.params}")
        if _finite(self.low, f"{name}.low") >= _finite(self.high, f"{name}.high"):
            raise ConfigurationError(f"{name}.low must be below {name}.high")
        if self.decimals is not None and (
            isinstance(self.decimals, bool) or not isinstance(self.decimals, int) or self.decimals < 0
        ):
            raise ConfigurationError(f"{name}.decimals must be a non-negative integer or None")

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        if self.family == "normal":
            values = np.clip(rng.normal(self.params[0], self.params[1], size), self.low, self.high)
        else:
            values = self.low + (self.high - self.low) * rng.beta(self.params[0], self.params[1], size)
        if self.decimals is not None:
            values = np.round(values, self.decimals)
        return values

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2.0


@dataclass(frozen=True)
class SurveyScale:
    """The reporting scale of the willingness score (a 1–5 Likert item by default)."""

    low: float = 1.0
    high: float = 5.0
    discrete: bool = True

    def __post_init__(self) -> None:
        if _finite(self.low, "scale.low") >= _finite(self.high, "scale.high"):
            raise ConfigurationError("scale.low must be below scale.high")
        if self.discrete:
            # Rounding a clipped score must not leave the scale.
            for name in ("low", "high"):
                value = getattr(self, name)
                if not float(value).is_integer():
                    raise ConfigurationError(
                        f"scale.{name} must be a whole number on a discrete scale, got {value!r}"
                    )

    def project(self, latent) -> np.ndarray:
        """Clip a latent score onto the scale, rounding to whole points if discrete."""
        values = np.clip(np.asarray(latent, dtype=float), self.low, self.high)
        if self.discrete:
            values = np.round(values)
        return values

    def contains(self, values) -> bool:
        values = np.asarray(values, dtype=float)
        return bool(np.all((values >= self.low) & (values <= self.high)))


# ── Population ────────────────────────────────────────────────────────────────

def _cat(levels, weights, ordered=False):
    return lambda: CategoricalSpec(levels, weights, ordered)


@dataclass(frozen=True)
class PopulationConfig:
    """One distribution spec per covariate. Defaults approximate US adults."""

    gender: CategoricalSpec = field(default_factory=_cat(schema.GENDER_LEVELS, (0.51, 0.49)))
    race: CategoricalSpec = field(
        default_factory=_cat(schema.RACE_LEVELS, (0.60, 0.12, 0.17, 0.06, 0.05))
    )
    age_group: CategoricalSpec = field(
        default_factory=_cat(schema.AGE_GROUP_LEVELS, (0.21, 0.25, 0.33, 0.21), ordered=True)
    )
    edu: CategoricalSpec = field(
        default_factory=_cat(schema.EDU_LEVELS, (0.10, 0.28, 0.28, 0.34), ordered=True)
    )
    income_bracket: CategoricalSpec = field(
        default_factory=_cat(
            schema.INCOME_LEVELS, (0.17, 0.20, 0.17, 0.13, 0.16, 0.17), ordered=True
        )
    )
    state: CategoricalSpec = field(
        default_factory=_cat(schema.STATE_LEVELS, tuple(schema.STATE_POPULATION.values()))
    )
    # Days per week on Facebook.
    fb_usage: ContinuousSpec = field(
        default_factory=lambda: ContinuousSpec("beta", (2.5, 1.5), 0.0, 7.0, decimals=0)
    )
    # Latent willingness to vaccinate; projected onto the survey scale at baseline.
    vax_percpt: ContinuousSpec = field(
        default_factory=lambda: ContinuousSpec("normal", (3.3, 1.0), 1.0, 5.0)
    )

    def __post_init__(self) -> None:
        for name in schema.CATEGORICAL_COVARIATES:
            spec = getattr(self, name)
            if not isinstance(spec, CategoricalSpec):
                raise ConfigurationError(f"population.{name} must be a CategoricalSpec")
            spec.validate(f"population.{name}")
        for name in schema.NUMERIC_COVARIATES:
            spec = getattr(self, name)
            if not isinstance(spec, ContinuousSpec):
                raise ConfigurationError(f"population.{name} must be a ContinuousSpec")
            spec.validate(f"population.{name}")

    def spec(self, covariate: str) -> CategoricalSpec | ContinuousSpec:
        return getattr(self, covariate)

    @property
    def dtypes(self) -> dict[str, pd.CategoricalDtype]:
        """The single categorical dtype of every categorical covariate."""
        return {name: getattr(self, name).dtype for name in schema.CATEGORICAL_COVARIATES}


# ── Causal model ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EffectConfig:
    """
    Ground-truth outcome model.

    For a subject with baseline score ``b`` on arm ``a``::

        new = b + main_effects[a] + interactions[a] * (b - scale.low) + noise

    ``interactions`` are slopes per scale point above the bottom of the scale;
    negative values shrink the effect for subjects who were already willing.
    ``baseline_noise_sd`` is measurement noise added to the latent attitude
    before it is projected onto the scale at baseline.
    """

    main_effects: Mapping[str, float] = field(
        default_factory=lambda: {"logos": 0.60, "pathos": 0.35}
    )
    interactions: Mapping[str, float] = field(
        default_factory=lambda: {"logos": -0.08, "pathos": -0.05}
    )
    noise_sd: float = 0.5
    baseline_noise_sd: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "main_effects", _frozen_arm_mapping(self.main_effects, "effects.main_effects")
        )
        object.__setattr__(
            self, "interactions", _frozen_arm_mapping(self.interactions, "effects.interactions")
        )
        if _finite(self.noise_sd, "effects.noise_sd") < 0:
            raise ConfigurationError("effects.noise_sd must be non-negative")
        if _finite(self.baseline_noise_sd, "effects.baseline_noise_sd") < 0:
            raise ConfigurationError("effects.baseline_noise_sd must be non-negative")

        logos, pathos = self.main_effects["logos"], self.main_effects["pathos"]
        if not logos > pathos > 0:
            logger.warning(
                "Main effects do not satisfy logos > pathos > 0 (logos=%s, pathos=%s)",
                logos, pathos,
            )
        for arm, slope in self.interactions.items():
            if slope > 0:
                logger.warning("Interaction slope for %s is positive (%s)", arm, slope)


@dataclass(frozen=True)
class ComplianceConfig:
    """
    Awareness of the assigned ad.

    ``awareness`` is the probability a treated subject with average
    ``fb_usage`` recalls the ad; ``usage_slope`` shifts that probability on
    the logit scale per unit of usage, measured in half-ranges from the
    midpoint of ``fb_usage`` (so ``-1`` is the lowest usage, ``+1`` the highest).
    """

    awareness: Mapping[str, float] = field(
        default_factory=lambda: {"logos": 0.70, "pathos": 0.65}
    )
    usage_slope: float = 0.8

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "awareness", _frozen_arm_mapping(self.awareness, "compliance.awareness")
        )
        for arm, p in self.awareness.items():
            if not 0 < p < 1:
                raise ConfigurationError(
                    f"compliance.awareness.{arm} must lie strictly between 0 and 1, got {p}"
                )
        if _finite(self.usage_slope, "compliance.usage_slope") < 0:
            raise ConfigurationError(
                "compliance.usage_slope must be non-negative: heavier users are "
                "at least as likely to see the ad"
            )


@dataclass(frozen=True)
class AttritionConfig:
    """Share of subjects lost between waves and how they are chosen."""

    rate: float = 0.10
    policy: str = "mcar"

    def __post_init__(self) -> None:
        if not 0 <= _finite(self.rate, "attrition.rate") < 1:
            raise ConfigurationError(f"attrition.rate must lie in [0, 1), got {self.rate}")
        if self.policy not in _ATTRITION_POLICIES:
            raise ConfigurationError(
                f"attrition.policy must be one of {list(_ATTRITION_POLICIES)}, got {self.policy!r}"
            )


# ── Root ──────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExperimentConfig:
    """
    Everything needed to simulate one experiment.

    Parameters
    ----------
    n : int
        Number of subjects sampled at baseline.
    seed : int or None
        Seed of the single random generator threaded through every stage.
        ``None`` draws fresh entropy (the run is then not reproducible).
    blocking : tuple of str
        Covariates whose level combinations define randomisation blocks.
        Numeric covariates are cut into ``block_bins`` equal-width bins.
    small_block_policy : {"raise", "pool"}
        What to do with blocks of fewer than three subjects.
    """

    n: int = 5_000
    seed: int | None = None
    blocking: tuple[str, ...] = ("age_group", "gender")
    small_block_policy: str = "raise"
    block_bins: int = 3
    scale: SurveyScale = field(default_factory=SurveyScale)
    population: PopulationConfig = field(default_factory=PopulationConfig)
    effects: EffectConfig = field(default_factory=EffectConfig)
    compliance: ComplianceConfig = field(default_factory=ComplianceConfig)
    attrition: AttritionConfig = field(default_factory=AttritionConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "blocking", tuple(self.blocking))

        if isinstance(self.n, bool) or not isinstance(self.n, (int, np.integer)):
            raise ConfigurationError(f"n must be an integer, got {self.n!r}")
        if not 1 <= self.n <= _MAX_N:
            raise ConfigurationError(
                f"n must lie in [1, {_MAX_N}] so every subject gets a unique "
                f"{schema.ID_DIGITS}-digit identifier, got {self.n}"
            )
        check_seed(self.seed)

        for name in self.blocking:
            if name not in schema.COVARIATES:
                raise ConfigurationError(
                    f"Blocking covariate '{name}' is unknown. "
                    f"Known covariates: {list(schema.COVARIATES)}"
                )
        if len(set(self.blocking)) != len(self.blocking):
            raise ConfigurationError(f"blocking lists a covariate twice: {list(self.blocking)}")
        if self.small_block_policy not in _SMALL_BLOCK_POLICIES:
            raise ConfigurationError(
                f"small_block_policy must be one of {list(_SMALL_BLOCK_POLICIES)}, "
                f"got {self.small_block_policy!r}"
            )
        if isinstance(self.block_bins, bool) or not isinstance(self.block_bins, int) or self.block_bins < 1:
            raise ConfigurationError(f"block_bins must be a positive integer, got {self.block_bins!r}")

        for name, kind in [
            ("scale", SurveyScale), ("population", PopulationConfig),
            ("effects", EffectConfig), ("compliance", ComplianceConfig),
            ("attrition", AttritionConfig),
        ]:
            if not isinstance(getattr(self, name), kind):
                raise ConfigurationError(f"{name} must be a {kind.__name__}")

    @property
    def n_retained(self) -> int:
        """Endline sample size after attrition."""
        return retained_count(self.n, self.attrition.rate)

    @classmethod
    def from_dict(cls, data: Mapping) -> ExperimentConfig:
        """
        Build a config from nested plain mappings, e.g. parsed JSON::

            ExperimentConfig.from_dict({
                "n": 2_000,
                "seed": 7,
                "population": {"gender": {"levels": ["F", "M"], "weights": [1, 1]}},
                "effects": {"main_effects": {"logos": 0.5, "pathos": 0.2}},
            })

        Omitted keys keep their defaults. Unknown keys raise ``ConfigurationError``.
        """
        _check_keys(data, [f.name for f in fields(cls)], "config")
        kwargs = dict(data)

        nested = {
            "scale": SurveyScale, "effects": EffectConfig,
            "compliance": ComplianceConfig, "attrition": AttritionConfig,
        }
        for key, kind in nested.items():
            if key in kwargs:
                kwargs[key] = _build(kind, kwargs[key], key)

        if "population" in kwargs:
            pop = kwargs["population"]
            _check_keys(pop, schema.COVARIATES, "population")
            specs = {}
            for name, spec in pop.items():
                kind = CategoricalSpec if name in schema.CATEGORICAL_COVARIATES else ContinuousSpec
                specs[name] = _build(kind, spec, f"population.{name}")
            kwargs["population"] = PopulationConfig(**specs)

        if "blocking" in kwargs:
            kwargs["blocking"] = tuple(kwargs["blocking"])
        return cls(**kwargs)
