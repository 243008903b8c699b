from __future__ import annotations

import logging

import pandas as pd

from . import schema
from ._exceptions import InvalidInputError
from .config import PopulationConfig, SurveyScale

logger = logging.getLogger(__name__)


class DatasetAssembler:
    """
    Joins the per-stage outputs into the two published tables.

    Every intermediate structure is keyed by ``identifier``, and the joins
    here are by key, never by row position. Categorical columns in both
    tables take their dtype from one place (the population config plus the
    fixed arm and awareness dtypes in ``schema``), so level sets and ordering
    are identical across the two tables.
    """

    def __init__(self, population: PopulationConfig, scale: SurveyScale) -> None:
        self._population = population
        self._scale = scale

    @property
    def dtypes(self) -> dict[str, object]:
        """Column dtypes shared by the baseline and endline tables."""
        dtypes: dict[str, object] = dict(self._population.dtypes)
        dtypes["fb_usage"] = "int64" if self._population.fb_usage.decimals == 0 else "float64"
        score = "int64" if self._scale.discrete else "float64"
        dtypes["vax_percpt"] = score
        dtypes["new_vax_percpt"] = score
        dtypes["treatment"] = schema.TREATMENT_DTYPE
        dtypes["ad_awareness"] = schema.AWARENESS_DTYPE
        dtypes["identifier"] = "object"
        return dtypes

    def apply_schema(self, table: pd.DataFrame) -> pd.DataFrame:
        """
        Cast every known column to its shared dtype.

        Used on freshly assembled tables and on tables read back from CSV,
        where identifiers must be re-read as strings to keep leading digits.
        """
        table = table.copy()
        if "identifier" in table.columns:
            table["identifier"] = table["identifier"].astype(str).str.zfill(schema.ID_DIGITS)
        for column, dtype in self.dtypes.items():
            if column in table.columns and column != "identifier":
                table[column] = table[column].astype(dtype)
        return table

    @staticmethod
    def _aligned(series: pd.Series, index: pd.Index, what: str) -> pd.Series:
        missing = index.difference(series.index)
        if len(missing):
            raise InvalidInputError(
                f"{what} is missing {len(missing)} identifier(s), e.g. {list(missing[:3])}"
            )
        return series.reindex(index)

    def baseline_table(
        self,
        subjects: pd.DataFrame,
        vax_percpt: pd.Series,
        treatment: pd.Series,
    ) -> pd.DataFrame:
        """One row per sampled subject: covariates, reported baseline score and arm."""
        index = subjects.index
        if not index.is_unique:
            raise InvalidInputError("Subject identifiers are not unique")

        table = subjects.drop(columns=[c for c in subjects.columns if c not in schema.COVARIATES])
        table["vax_percpt"] = self._aligned(vax_percpt, index, "vax_percpt")
        table["treatment"] = self._aligned(treatment, index, "treatment")
        table = table.reset_index()[schema.BASELINE_COLUMNS]
        table = self.apply_schema(table)
        logger.info("Assembled baseline table: %d rows", len(table))
        return table

    def endline_table(
        self,
        baseline: pd.DataFrame,
        retained: pd.Index,
        outcomes: pd.DataFrame,
        awareness: pd.Series,
    ) -> pd.DataFrame:
        """
        One row per retained subject: the baseline row plus ``ad_awareness``
        and the realised ``new_vax_percpt``.

        Raises
        ------
        ``InvalidInputError``
            If a retained identifier is absent from the baseline table, or
            the outcome or awareness inputs do not cover every retained subject.
        """
        keyed = baseline.set_index("identifier")
        missing = retained.difference(keyed.index)
        if len(missing):
            raise InvalidInputError(
                f"{len(missing)} retained identifier(s) are not in the baseline table, "
                f"e.g. {list(missing[:3])}"
            )

        table = keyed.loc[retained].copy()
        table["ad_awareness"] = self._aligned(awareness, retained, "ad_awareness")
        table["new_vax_percpt"] = self._aligned(outcomes["new_vax_percpt"], retained, "new_vax_percpt")
        table.index.name = "identifier"
        table = table.reset_index()[schema.ENDLINE_COLUMNS]
        table = self.apply_schema(table)
        logger.info("Assembled endline table: %d rows", len(table))
        return table
