from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from . import schema
from ._exceptions import BlockTooSmallError, ConfigurationError
from .config import ContinuousSpec, PopulationConfig
from .covariates import LATENT_COLUMN

logger = logging.getLogger(__name__)

POOLED_BLOCK = "pooled small blocks"
_MIN_BLOCK = len(schema.ARMS)


class BlockedAssigner:
    """
    Blocked (stratified) random assignment to the three arms.

    Subjects are grouped by the exact combination of their blocking-covariate
    levels. Inside every block each arm receives ``size // 3`` subjects; the
    ``size % 3`` leftover subjects go to distinct arms picked at random, so no
    arm is systematically favoured and every arm's count is within one of
    ``size / 3``. The arm labels are then randomly permuted over the block.

    Numeric blocking covariates are cut into ``block_bins`` equal-width bins
    over their configured range. ``vax_percpt`` is binned on the latent score
    drawn by the sampler, since the reported score does not exist yet at
    assignment time.

    Blocks with fewer than three subjects raise ``BlockTooSmallError`` under
    ``small_block_policy="raise"``; under ``"pool"`` they are merged into a
    single residual block assigned by the same rule.

    Example::

        assigner = BlockedAssigner(["age_group", "gender"], PopulationConfig())
        treatment = assigner.assign(subjects, rng)
    """

    def __init__(
        self,
        blocking,
        population: PopulationConfig,
        small_block_policy: str = "raise",
        block_bins: int = 3,
    ) -> None:
        self._blocking = tuple(blocking)
        self._population = population
        self._policy = small_block_policy
        self._bins = block_bins
        self._validate_inputs()

    def _validate_inputs(self) -> None:
        for name in self._blocking:
            if name not in schema.COVARIATES:
                raise ConfigurationError(
                    f"Blocking covariate '{name}' is unknown. "
                    f"Known covariates: {list(schema.COVARIATES)}"
                )
        if self._policy not in ("raise", "pool"):
            raise ConfigurationError(
                f"small_block_policy must be 'raise' or 'pool', got {self._policy!r}"
            )
        if self._bins < 1:
            raise ConfigurationError(f"block_bins must be a positive integer, got {self._bins}")

    @property
    def blocking(self) -> tuple[str, ...]:
        return self._blocking

    # ── Blocks ────────────────────────────────────────────────────────────────

    def _block_column(self, subjects: pd.DataFrame, name: str) -> pd.Series:
        spec = self._population.spec(name)
        if not isinstance(spec, ContinuousSpec):
            return subjects[name].astype(str)
        source = LATENT_COLUMN if name == "vax_percpt" else name
        edges = np.linspace(spec.low, spec.high, self._bins + 1)
        binned = pd.cut(subjects[source], bins=edges, include_lowest=True)
        return binned.astype(str)

    def blocks(self, subjects: pd.DataFrame) -> pd.Series:
        """
        Block label of every subject, indexed like ``subjects``.

        Labels read ``"age_group=30-44 | gender=Male"``. With no blocking
        covariates everyone shares the single block ``"all"``.
        """
        if not self._blocking:
            return pd.Series("all", index=subjects.index, name="block")

        parts = [name + "=" + self._block_column(subjects, name) for name in self._blocking]
        label = parts[0]
        for part in parts[1:]:
            label = label + " | " + part
        return label.rename("block")

    def effective_blocks(self, subjects: pd.DataFrame) -> pd.Series:
        """
        Blocks actually used for assignment, after the small-block policy.

        Raises
        ------
        ``BlockTooSmallError``
            If a block has fewer than three subjects and the policy is ``"raise"``.
        """
        return self._apply_small_block_policy(self.blocks(subjects))

    def _apply_small_block_policy(self, blocks: pd.Series) -> pd.Series:
        sizes = blocks.value_counts()
        small = sorted(sizes[sizes < _MIN_BLOCK].index)
        if not small:
            return blocks

        if self._policy == "raise":
            detail = ", ".join(f"'{b}' ({sizes[b]})" for b in small)
            raise BlockTooSmallError(
                f"{len(small)} block(s) hold fewer than {_MIN_BLOCK} subjects and "
                f"cannot be split across {_MIN_BLOCK} arms: {detail}. Block on fewer "
                f"covariates, sample more subjects, or use small_block_policy='pool'."
            )

        logger.warning(
            "Pooling %d block(s) with fewer than %d subjects into one residual block",
            len(small), _MIN_BLOCK,
        )
        return blocks.where(~blocks.isin(small), POOLED_BLOCK)

    # ── Assignment ────────────────────────────────────────────────────────────

    def assign(
        self,
        subjects: pd.DataFrame,
        rng: np.random.Generator,
        blocks: pd.Series | None = None,
    ) -> pd.Series:
        """
        Assign every subject to an arm.

        Blocks are processed in sorted label order and members in table
        order, so the draws consumed from ``rng`` depend only on the data.
        Pass ``blocks`` (from ``effective_blocks``) to skip recomputing them.

        Returns
        -------
        pd.Series
            Categorical ``treatment`` indexed by identifier.

        Raises
        ------
        ``BlockTooSmallError``
            If a block has fewer than three subjects and the policy is ``"raise"``.
        """
        if blocks is None:
            blocks = self.effective_blocks(subjects)
        n_arms = len(schema.ARMS)
        codes = np.empty(len(subjects), dtype=np.int64)

        for label, positions in sorted(blocks.groupby(blocks, sort=False).indices.items()):
            size = len(positions)
            per_arm, leftover = divmod(size, n_arms)
            block_codes = np.repeat(np.arange(n_arms), per_arm)
            if leftover:
                extra = rng.choice(n_arms, size=leftover, replace=False)
                block_codes = np.concatenate([block_codes, extra])
            codes[np.sort(positions)] = rng.permutation(block_codes)
            logger.debug(
                "Block %s: %d subjects, arm counts %s",
                label, size, np.bincount(block_codes, minlength=n_arms).tolist(),
            )

        treatment = pd.Series(
            pd.Categorical.from_codes(codes, dtype=schema.TREATMENT_DTYPE),
            index=subjects.index,
            name="treatment",
        )
        logger.info(
            "Assigned %d subjects across %d block(s): %s",
            len(subjects), blocks.nunique(), treatment.value_counts(sort=False).to_dict(),
        )
        return treatment

    @staticmethod
    def block_counts(blocks: pd.Series, treatment: pd.Series) -> pd.DataFrame:
        """Arm counts per block: one row per block, one column per arm."""
        return pd.crosstab(blocks, treatment).reindex(columns=list(schema.ARMS), fill_value=0)
