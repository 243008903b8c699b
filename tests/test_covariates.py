import numpy as np
import pandas as pd
import pytest

from rehearsal import CategoricalSpec, ConfigurationError, CovariateSampler, PopulationConfig
from rehearsal import schema


N = 3_000


def make_subjects(seed=42, population=None, n=N):
    sampler = CovariateSampler(population or PopulationConfig())
    return sampler.sample(n, np.random.default_rng(seed))


class TestCovariateSampler:
    def test_shape_and_index(self):
        subjects = make_subjects()
        assert len(subjects) == N
        assert subjects.index.name == "identifier"
        assert list(subjects.columns) == [
            *schema.CATEGORICAL_COVARIATES, "fb_usage", "vax_latent",
        ]

    def test_identifiers_are_unique_five_digit_strings(self):
        ids = make_subjects().index
        assert ids.is_unique
        assert ids.str.fullmatch(r"[1-9]\d{4}").all()

    def test_categorical_levels_come_from_config(self):
        population = PopulationConfig()
        subjects = make_subjects(population=population)
        for name in schema.CATEGORICAL_COVARIATES:
            assert subjects[name].dtype == population.spec(name).dtype

    def test_ordered_covariates_are_ordered(self):
        subjects = make_subjects()
        assert subjects["edu"].cat.ordered
        assert subjects["income_bracket"].cat.ordered
        assert list(subjects["edu"].cat.categories) == list(schema.EDU_LEVELS)

    def test_numeric_covariates_respect_bounds(self):
        subjects = make_subjects()
        fb = subjects["fb_usage"]
        assert fb.between(0, 7).all()
        assert (fb == np.round(fb)).all()
        assert subjects["vax_latent"].between(1, 5).all()

    def test_zero_weight_level_never_drawn(self):
        population = PopulationConfig(gender=CategoricalSpec(("Female", "Male"), (1, 0)))
        subjects = make_subjects(population=population)
        assert (subjects["gender"] == "Female").all()
        # the unused level is still part of the dtype
        assert "Male" in subjects["gender"].cat.categories

    def test_marginals_track_weights(self):
        subjects = make_subjects(n=20_000)
        share = subjects["gender"].value_counts(normalize=True)
        assert abs(share["Female"] - 0.51) < 0.02

    def test_same_seed_same_draws(self):
        pd.testing.assert_frame_equal(make_subjects(seed=7), make_subjects(seed=7))

    def test_different_seed_different_draws(self):
        assert not make_subjects(seed=1).index.equals(make_subjects(seed=2).index)

    def test_invalid_n_raises(self):
        with pytest.raises(ConfigurationError, match="n must lie"):
            make_subjects(n=0)

    def test_rejects_non_population(self):
        with pytest.raises(ConfigurationError):
            CovariateSampler({"gender": None})
