import itertools

import numpy as np
import pandas as pd
import pytest

from rehearsal import (
    AttritionConfig, BlockedAssigner, BlockTooSmallError, ConfigurationError, ContinuousSpec,
    EffectConfig, ExperimentConfig, PopulationConfig, SimulatedExperiment, SurveyScale, read_tables,
)
from rehearsal import schema


N = 5_000
SEED = 42


def make_result(seed=SEED, **kwargs):
    config = ExperimentConfig(n=kwargs.pop("n", N), seed=seed, **kwargs)
    return SimulatedExperiment(config).run()


class TestScenario:
    """N=5000, seed 42, 10% attrition, blocked on age_group × gender."""

    def test_table_sizes(self):
        result = make_result(attrition=AttritionConfig(rate=0.10), blocking=("age_group", "gender"))
        assert len(result.baseline) == 5_000
        assert len(result.endline) == 4_500

    def test_arm_counts(self):
        result = make_result()
        counts = result.baseline["treatment"].value_counts()
        assert set(counts.index) == set(schema.ARMS)
        assert counts.between(1_660, 1_673).all()

    def test_every_cell_present_in_both_tables(self):
        result = make_result()
        cells = set(itertools.product(schema.AGE_GROUP_LEVELS, schema.GENDER_LEVELS, schema.ARMS))
        for table in (result.baseline, result.endline):
            seen = set(
                table[["age_group", "gender", "treatment"]].astype(str).itertuples(index=False, name=None)
            )
            assert cells <= seen


class TestReproducibility:
    def test_same_seed_identical_tables(self):
        a, b = make_result(n=1_500), make_result(n=1_500)
        pd.testing.assert_frame_equal(a.baseline, b.baseline)
        pd.testing.assert_frame_equal(a.endline, b.endline)
        assert a.baseline.to_csv(index=False) == b.baseline.to_csv(index=False)
        assert a.endline.to_csv(index=False) == b.endline.to_csv(index=False)

    def test_run_seed_overrides_config(self):
        experiment = SimulatedExperiment(ExperimentConfig(n=600, seed=1))
        pd.testing.assert_frame_equal(
            experiment.run(seed=2).baseline,
            SimulatedExperiment(ExperimentConfig(n=600, seed=2)).run().baseline,
        )

    def test_unseeded_run_records_its_seed(self):
        experiment = SimulatedExperiment(ExperimentConfig(n=600))
        first = experiment.run()
        assert isinstance(first.seed, int)
        pd.testing.assert_frame_equal(experiment.run(seed=first.seed).endline, first.endline)

    def test_invalid_run_seed_raises_before_sampling(self):
        experiment = SimulatedExperiment(ExperimentConfig(n=600, seed=1))
        with pytest.raises(ConfigurationError, match="seed"):
            experiment.run(seed=-1)
        with pytest.raises(ConfigurationError, match="seed"):
            experiment.run(seed=1.5)

    def test_different_seeds_differ(self):
        a, b = make_result(seed=1, n=600), make_result(seed=2, n=600)
        assert not a.baseline["identifier"].equals(b.baseline["identifier"])


class TestInvariants:
    def test_blocks_split_evenly(self):
        result = make_result()
        treatment = result.baseline.set_index("identifier")["treatment"]
        counts = BlockedAssigner.block_counts(result.blocks, treatment)
        sizes = counts.sum(axis=1)
        for arm in schema.ARMS:
            assert ((counts[arm] - sizes / 3).abs() <= 1).all()

    def test_marginal_assignment_rate(self):
        share = make_result(blocking=("state",), small_block_policy="pool").baseline[
            "treatment"
        ].value_counts(normalize=True)
        assert ((share - 1 / 3).abs() < 0.02).all()

    def test_control_never_aware(self):
        endline = make_result().endline
        control = endline[endline["treatment"] == "control"]
        assert len(control) > 0
        assert (control["ad_awareness"] == "No").all()

    def test_treated_awareness_is_imperfect(self):
        rates = make_result().awareness_rate
        for arm in schema.TREATED_ARMS:
            assert 0.4 < rates[arm] < 0.95

    def test_endline_ids_subset_of_baseline(self):
        result = make_result(attrition=AttritionConfig(rate=0.23))
        ids = set(result.endline["identifier"])
        assert ids <= set(result.baseline["identifier"])
        assert len(ids) == round(N * (1 - 0.23))

    def test_endline_response_derived_from_ids(self):
        result = make_result(n=900)
        response = result.endline_response
        assert len(response) == 900
        assert response.sum() == len(result.endline)
        assert set(response[response].index) == set(result.endline["identifier"])

    def test_scores_on_scale(self):
        result = make_result()
        assert result.endline["new_vax_percpt"].between(1, 5).all()
        assert result.baseline["vax_percpt"].between(1, 5).all()

    def test_fractional_continuous_scale(self):
        config = ExperimentConfig(
            n=600, seed=1,
            scale=SurveyScale(0.5, 5.5, discrete=False),
            population=PopulationConfig(vax_percpt=ContinuousSpec("normal", (3.0, 1.5), 0.5, 5.5)),
        )
        result = SimulatedExperiment(config).run()
        assert result.baseline["vax_percpt"].between(0.5, 5.5).all()
        assert result.endline["new_vax_percpt"].between(0.5, 5.5).all()

    def test_effects_fixed_at_construction(self):
        main = {"logos": 0.6, "pathos": 0.35}
        config = ExperimentConfig(n=300, seed=1, effects=EffectConfig(main_effects=main))
        main["logos"] = float("nan")
        result = SimulatedExperiment(config).run()
        assert result.endline["new_vax_percpt"].notna().all()
        pd.testing.assert_frame_equal(result.endline, make_result(n=300, seed=1).endline)

    def test_endline_rows_match_baseline(self):
        result = make_result(n=1_000)
        base = result.baseline.set_index("identifier")
        end = result.endline.set_index("identifier")
        pd.testing.assert_frame_equal(base.loc[end.index], end[base.columns])

    def test_factor_levels_shared(self):
        result = make_result(n=600)
        for column in schema.BASELINE_COLUMNS[1:]:
            assert result.baseline[column].dtype == result.endline[column].dtype

    def test_realised_outcome_is_assigned_potential_outcome(self):
        result = make_result(n=1_200)
        end = result.endline.set_index("identifier")
        potential = result.potential_outcomes.loc[end.index]
        for arm in schema.ARMS:
            rows = end["treatment"] == arm
            np.testing.assert_array_equal(end.loc[rows, "new_vax_percpt"], potential.loc[rows, f"y_{arm}"])


class TestEffects:
    def test_mean_outcome_ordering(self):
        endline = make_result().endline
        means = endline.groupby(endline["treatment"].astype(str))["new_vax_percpt"].mean()
        assert means["logos"] > means["pathos"] > means["control"]

    def test_true_itt_ordering(self):
        truth = make_result().true_itt
        assert truth["logos"] > truth["pathos"] > 0

    def test_attrition_leaves_covariates_unchanged(self):
        result = make_result()
        base, end = result.baseline, result.endline
        assert abs(base["fb_usage"].mean() - end["fb_usage"].mean()) < 0.05
        base_share = base["gender"].value_counts(normalize=True)
        end_share = end["gender"].value_counts(normalize=True)
        assert ((base_share - end_share).abs() < 0.02).all()


class TestSmallBlocks:
    def test_raise_policy_surfaces(self):
        config = ExperimentConfig(n=40, seed=3, blocking=("state", "race"))
        with pytest.raises(BlockTooSmallError):
            SimulatedExperiment(config).run()

    def test_pool_policy_runs(self):
        config = ExperimentConfig(n=40, seed=3, blocking=("state", "race"), small_block_policy="pool")
        result = SimulatedExperiment(config).run()
        assert len(result.baseline) == 40
        assert "pooled small blocks" in set(result.blocks)


class TestOutputs:
    def test_long_panel(self):
        result = make_result(n=900)
        panel = result.long_panel()
        assert list(panel.columns) == ["identifier", "wave", "post", "treatment", "score"]
        assert len(panel) == 2 * len(result.endline)
        assert panel.groupby("identifier").size().eq(2).all()
        assert set(panel["post"]) == {0, 1}

    def test_csv_round_trip(self, tmp_path):
        result = make_result(n=600)
        baseline_path, endline_path = result.to_csv(tmp_path / "out")
        assert baseline_path.name == "treatment.csv"
        assert endline_path.name == "endline.csv"

        baseline, endline = read_tables(tmp_path / "out", result.config)
        pd.testing.assert_frame_equal(baseline, result.baseline)
        pd.testing.assert_frame_equal(endline, result.endline)

    def test_summaries_run(self):
        result = make_result(n=900)
        assert "Simulated Experiment" in result.summary()
        assert "Executive Summary" in result.executive_summary()
        names = [a.name for a in result.assumptions]
        assert any("SUTVA" in n for n in names)
        assert any("missing completely at random" in n for n in names)
