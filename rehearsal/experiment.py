from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from . import schema
from .assembler import DatasetAssembler
from .assignment import BlockedAssigner
from .attrition import AttritionModel
from .compliance import ComplianceModel
from .config import ExperimentConfig, check_seed
from .covariates import LATENT_COLUMN, CovariateSampler
from .diagnostics._check import Assumption, DesignReport
from .outcomes import PotentialOutcomeModel, potential_outcome_column

logger = logging.getLogger(__name__)

BASELINE_FILE = "treatment.csv"
ENDLINE_FILE = "endline.csv"

SIMULATION_ASSUMPTIONS: list[Assumption] = [
    Assumption("Assignment is independent of covariates within blocks", "Covariate balance (baseline)"),
    Assumption("Attrition is missing completely at random", "Attrition independence"),
    Assumption("Control subjects cannot be aware of an ad (one-sided noncompliance)", "One-sided awareness"),
    Assumption("No spillover between subjects (SUTVA)"),
    Assumption("The outcome responds to assignment, not to awareness itself"),
]


class SimulationResult:
    """
    The two tables of one simulated experiment, plus the ground truth behind them.

    ``baseline`` and ``endline`` are what a real study would publish.
    ``potential_outcomes`` and ``true_itt`` are only available because the
    data are simulated, and are what a planned analysis should rediscover.
    """

    def __init__(
        self,
        config: ExperimentConfig,
        baseline: pd.DataFrame,
        endline: pd.DataFrame,
        potential_outcomes: pd.DataFrame,
        blocks: pd.Series,
        seed: int | None = None,
    ) -> None:
        self._config = config
        self._baseline = baseline
        self._endline = endline
        self._potential = potential_outcomes
        self._blocks = blocks
        self._seed = seed

    @property
    def config(self) -> ExperimentConfig:
        return self._config

    @property
    def seed(self) -> int | None:
        """Seed the tables were generated from; pass it to ``run`` to reproduce them."""
        return self._seed

    @property
    def baseline(self) -> pd.DataFrame:
        """Baseline/treatment table: one row per sampled subject."""
        return self._baseline

    @property
    def endline(self) -> pd.DataFrame:
        """Endline table: one row per retained subject."""
        return self._endline

    @property
    def potential_outcomes(self) -> pd.DataFrame:
        """Every retained subject's score under each arm, indexed by identifier."""
        return self._potential

    @property
    def blocks(self) -> pd.Series:
        """Randomisation block of each baseline subject, indexed by identifier."""
        return self._blocks

    @property
    def endline_response(self) -> pd.Series:
        """``True`` for baseline subjects who appear in the endline table."""
        responded = self._baseline["identifier"].isin(self._endline["identifier"])
        return pd.Series(
            responded.to_numpy(), index=pd.Index(self._baseline["identifier"]), name="endline_response"
        )

    @property
    def true_itt(self) -> dict[str, float]:
        """
        Sample ITT of each treated arm among retained subjects: the mean of
        ``Y(arm) - Y(control)`` on the survey scale.
        """
        control = self._potential[potential_outcome_column(schema.CONTROL)]
        return {
            arm: float((self._potential[potential_outcome_column(arm)] - control).mean())
            for arm in schema.TREATED_ARMS
        }

    @property
    def awareness_rate(self) -> dict[str, float]:
        """Share of endline subjects on each arm who report seeing the ad."""
        aware = self._endline["ad_awareness"].astype(str) == schema.AWARE
        rates = aware.groupby(self._endline["treatment"].astype(str)).mean()
        return {arm: float(rates.get(arm, np.nan)) for arm in schema.ARMS}

    @property
    def assumptions(self) -> list[Assumption]:
        """Simplifying assumptions built into the simulated design."""
        return list(SIMULATION_ASSUMPTIONS)

    # ── Derived tables ────────────────────────────────────────────────────────

    def long_panel(self) -> pd.DataFrame:
        """
        Stack the two waves for a difference-in-differences regression.

        Only subjects present in both waves are included. Columns:
        ``identifier``, ``wave`` ("baseline"/"endline"), ``post`` (0/1),
        ``treatment`` and ``score``.
        """
        ids = self._endline["identifier"]
        before = self._baseline[self._baseline["identifier"].isin(ids)]
        waves = [
            before[["identifier", "treatment"]].assign(
                wave="baseline", post=0, score=before["vax_percpt"].to_numpy()
            ),
            self._endline[["identifier", "treatment"]].assign(
                wave="endline", post=1, score=self._endline["new_vax_percpt"].to_numpy()
            ),
        ]
        panel = pd.concat(waves, ignore_index=True)
        panel["wave"] = pd.Categorical(panel["wave"], categories=["baseline", "endline"], ordered=True)
        return panel[["identifier", "wave", "post", "treatment", "score"]]

    def to_csv(self, directory) -> tuple[Path, Path]:
        """
        Write ``treatment.csv`` and ``endline.csv`` into ``directory``.

        Returns the two paths. Read them back with ``read_tables``.
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        baseline_path = directory / BASELINE_FILE
        endline_path = directory / ENDLINE_FILE
        self._baseline.to_csv(baseline_path, index=False)
        self._endline.to_csv(endline_path, index=False)
        logger.info("Wrote %s and %s", baseline_path, endline_path)
        return baseline_path, endline_path

    # ── Checks and reporting ──────────────────────────────────────────────────

    def check(self) -> DesignReport:
        """
        Run design checks against the generated tables.

        Currently runs:

        - **Covariate balance** at baseline and at endline: no covariate
          should predict the arm.
        - **One-sided awareness**: no control subject reports seeing an ad.
        - **Attrition independence**: responders and attriters should not
          differ on covariates or arm.
        - **ITT recovery**: a difference-in-differences OLS should land
          within 3 SE of ``true_itt`` for each arm.
        - **Effect ordering**: mean change should rank the arms like the truth.
        - **Awareness first stage**: assignment should strongly predict
          awareness (F ≥ 10).
        """
        from .diagnostics.attrition import _check_attrition_independence
        from .diagnostics.balance import _check_covariate_balance
        from .diagnostics.effects import (
            _check_awareness_first_stage,
            _check_effect_ordering,
            _check_itt_recovery,
            _check_one_sided_awareness,
        )

        truth = self.true_itt
        checks = [
            _check_covariate_balance(self._baseline, "baseline"),
            _check_covariate_balance(self._endline, "endline"),
            _check_one_sided_awareness(self._endline),
            _check_attrition_independence(self._baseline, self.endline_response),
            _check_itt_recovery(self._endline, truth),
            _check_effect_ordering(self._endline, truth),
            _check_awareness_first_stage(self._endline),
        ]
        return DesignReport(
            checks, n_baseline=len(self._baseline), n_endline=len(self._endline), seed=self._seed,
        )

    def executive_summary(self) -> str:
        """Narrative description of the simulated design and its ground truth."""
        from ._explain import explain_simulation
        return explain_simulation(self)

    def summary(self) -> str:
        """Concise tabular summary of sizes, arm counts and true effects."""
        counts = self._baseline["treatment"].value_counts(sort=False)
        end_counts = self._endline["treatment"].value_counts(sort=False)
        awareness = self.awareness_rate
        truth = self.true_itt
        blocking = ", ".join(self._config.blocking) or "none"
        lines = [
            "",
            f"Simulated Experiment: {len(self._baseline)} → {len(self._endline)} subjects",
            f"  Blocking: {blocking}  ({self._blocks.nunique()} blocks)",
            f"  Attrition: {self._config.attrition.rate:.1%} ({self._config.attrition.policy})",
            f"  Seed: {self._seed}",
            "─" * 50,
            f"  {'arm':<10}{'baseline':>10}{'endline':>10}{'aware':>10}{'true ITT':>10}",
        ]
        for arm in schema.ARMS:
            itt = truth.get(arm, 0.0)
            lines.append(
                f"  {arm:<10}{counts.get(arm, 0):>10}{end_counts.get(arm, 0):>10}"
                f"{awareness[arm]:>10.3f}{itt:>10.3f}"
            )
        lines += ["", "  Assumptions", "  " + "┄" * 48]
        for a in SIMULATION_ASSUMPTIONS:
            lines.append(f"  {a.label()}  {a.name}")
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


class SimulatedExperiment:
    """
    Generates a synthetic three-arm field experiment with a known causal model.

    One seeded ``numpy.random.Generator`` is threaded through the stages in
    a fixed order: covariate sampling, blocked assignment, the baseline
    outcome pass, attrition, the endline outcome pass and finally awareness.
    A fixed seed therefore reproduces both tables exactly.

    Example::

        config = ExperimentConfig(n=5_000, seed=42, blocking=("age_group", "gender"))
        result = SimulatedExperiment(config).run()
        print(result.summary())
        print(result.check().summary())
    """

    def __init__(self, config: ExperimentConfig | None = None) -> None:
        self._config = config if config is not None else ExperimentConfig()
        c = self._config
        self._sampler = CovariateSampler(c.population)
        self._assigner = BlockedAssigner(
            c.blocking, c.population, small_block_policy=c.small_block_policy, block_bins=c.block_bins,
        )
        self._outcomes = PotentialOutcomeModel(c.effects, c.scale)
        self._compliance = ComplianceModel(c.compliance, c.population.fb_usage)
        self._attrition = AttritionModel(c.attrition)
        self._assembler = DatasetAssembler(c.population, c.scale)

    @property
    def config(self) -> ExperimentConfig:
        return self._config

    @property
    def outcome_model(self) -> PotentialOutcomeModel:
        return self._outcomes

    def run(self, seed: int | None = None) -> SimulationResult:
        """
        Simulate one experiment.

        Parameters
        ----------
        seed : int, optional
            Overrides ``config.seed`` for this run. When neither is set, fresh
            entropy is drawn and recorded as ``SimulationResult.seed``.

        Raises
        ------
        ``ConfigurationError``
            If ``seed`` is not a non-negative integer.
        ``BlockTooSmallError``
            If a block has fewer than three subjects under the ``"raise"`` policy.
        """
        check_seed(seed)
        seed = self._config.seed if seed is None else seed
        if seed is None:
            # Fresh entropy, kept on the result so the run can be repeated.
            seed = int(np.random.SeedSequence().entropy)
        rng = np.random.default_rng(seed)
        logger.info("Simulating experiment: n=%d, seed=%s", self._config.n, seed)

        subjects = self._sampler.sample(self._config.n, rng)
        blocks = self._assigner.effective_blocks(subjects)
        treatment = self._assigner.assign(subjects, rng, blocks=blocks)
        vax_percpt = self._outcomes.baseline(subjects[LATENT_COLUMN], rng)
        baseline = self._assembler.baseline_table(subjects, vax_percpt, treatment)

        retained = self._attrition.select(subjects.index, rng)
        potential = self._outcomes.endline(vax_percpt.loc[retained], treatment.loc[retained], rng)
        awareness = self._compliance.draw(
            treatment.loc[retained], subjects.loc[retained, "fb_usage"], rng,
        )
        endline = self._assembler.endline_table(baseline, retained, potential, awareness)

        return SimulationResult(self._config, baseline, endline, potential, blocks, seed=seed)


def read_tables(directory, config: ExperimentConfig | None = None) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Read ``treatment.csv`` and ``endline.csv`` back with the shared dtypes.

    ``config`` must describe the same population and scale the tables were
    generated with (defaults otherwise).
    """
    config = config if config is not None else ExperimentConfig()
    assembler = DatasetAssembler(config.population, config.scale)
    directory = Path(directory)
    tables = []
    for name in (BASELINE_FILE, ENDLINE_FILE):
        table = pd.read_csv(directory / name, dtype={"identifier": str})
        tables.append(assembler.apply_schema(table))
    return tables[0], tables[1]
