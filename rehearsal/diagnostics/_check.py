from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import pandas as pd

from .._exceptions import InvalidInputError

# Order in which stages are reported.
STAGES: tuple[str, ...] = ("baseline", "endline", "attrition", "effects")


@dataclass(frozen=True)
class Assumption:
    """
    A simplifying assumption built into the simulated design.

    ``checked_by`` names the design check that tests the assumption on the
    generated tables. Assumptions without one hold by construction of the
    simulator and have to be argued for the real study.
    """

    name: str
    checked_by: str | None = None

    @property
    def testable(self) -> bool:
        return self.checked_by is not None

    def label(self) -> str:
        return f"[{self.checked_by}]" if self.testable else "[by construction]"


@dataclass(frozen=True, repr=False)
class DesignCheck:
    """
    Outcome of one design check.

    Attributes
    ----------
    name : str
        Check name, e.g. ``"ITT recovery"``.
    stage : str
        Which part of the design it inspects: one of ``STAGES``.
    passed : bool
        Verdict of comparing ``statistic`` with ``threshold``.
    statistic : float
        The quantity the verdict rests on (smallest covariate p-value, largest
        estimate-to-truth gap in standard errors, first-stage F, ...).
    threshold : float
        The value ``statistic`` is compared against.
    pvalue : float or None
        p-value of the underlying test, Bonferroni-adjusted where several
        covariates are tested at once. ``None`` for descriptive checks.
    values : mapping
        Per-covariate or per-arm numbers behind ``statistic``.
    detail : str
        One-line human-readable account of the above.
    """

    name: str
    stage: str
    passed: bool
    statistic: float
    threshold: float
    pvalue: float | None = None
    values: Mapping[str, float] = field(default_factory=dict)
    detail: str = ""

    def __post_init__(self) -> None:
        if self.stage not in STAGES:
            raise InvalidInputError(f"Unknown stage {self.stage!r}; expected one of {list(STAGES)}")

    def __repr__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return (
            f"DesignCheck({status!r}, {self.name!r}, "
            f"statistic={self.statistic:.4g}, threshold={self.threshold:.4g})"
        )


class DesignReport:
    """
    Design checks run against one simulated experiment, grouped by stage.

    Obtain via ``SimulationResult.check()``::

        report = SimulatedExperiment(ExperimentConfig(seed=42)).run().check()
        report.stage("attrition")      # checks on who dropped out
        report.to_frame()              # one row per check
    """

    def __init__(
        self,
        checks: list[DesignCheck],
        n_baseline: int,
        n_endline: int,
        seed: int | None = None,
    ) -> None:
        self._checks = checks
        self._n_baseline = n_baseline
        self._n_endline = n_endline
        self._seed = seed

    @property
    def checks(self) -> list[DesignCheck]:
        return list(self._checks)

    @property
    def seed(self) -> int | None:
        """Seed of the run the checked tables came from."""
        return self._seed

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self._checks)

    @property
    def failed_checks(self) -> list[DesignCheck]:
        return [c for c in self._checks if not c.passed]

    def stage(self, name: str) -> list[DesignCheck]:
        """Checks that inspect one stage of the design."""
        if name not in STAGES:
            raise InvalidInputError(f"Unknown stage {name!r}; expected one of {list(STAGES)}")
        return [c for c in self._checks if c.stage == name]

    @property
    def stages(self) -> dict[str, bool]:
        """Whether every check of each stage passed (stages with no checks omitted)."""
        return {
            s: all(c.passed for c in self.stage(s)) for s in STAGES if self.stage(s)
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per check with its statistic, threshold and p-value."""
        return pd.DataFrame(
            [
                {
                    "stage": c.stage, "check": c.name, "passed": c.passed,
                    "statistic": c.statistic, "threshold": c.threshold, "pvalue": c.pvalue,
                }
                for c in self._checks
            ],
            columns=["stage", "check", "passed", "statistic", "threshold", "pvalue"],
        )

    def summary(self) -> str:
        seed = "unseeded" if self._seed is None else f"seed {self._seed}"
        lines = [
            "",
            f"Design checks: {self._n_baseline} baseline → {self._n_endline} endline ({seed})",
            "─" * 50,
        ]
        for stage in STAGES:
            checks = self.stage(stage)
            if not checks:
                continue
            lines.append(f"  {stage}")
            for check in checks:
                status = "PASS" if check.passed else "FAIL"
                lines.append(f"    [{status}]  {check.name}: {check.detail}")
        lines.append("")
        failed = self.failed_checks
        if failed:
            stages = sorted({c.stage for c in failed}, key=STAGES.index)
            lines.append(f"  {len(failed)} check(s) failed in: {', '.join(stages)}.")
        else:
            lines.append("  All checks passed.")
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()
