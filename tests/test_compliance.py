import numpy as np
import pandas as pd
import pytest

from rehearsal import ComplianceConfig, ComplianceModel, ContinuousSpec, InvalidInputError
from rehearsal import schema


FB_USAGE = ContinuousSpec("beta", (2.5, 1.5), 0.0, 7.0, decimals=0)


def make_model(awareness=None, usage_slope=0.8):
    config = ComplianceConfig(
        awareness=awareness or {"logos": 0.7, "pathos": 0.6}, usage_slope=usage_slope,
    )
    return ComplianceModel(config, FB_USAGE)


def make_inputs(arms, usage):
    index = pd.Index([f"{30_000 + i}" for i in range(len(arms))], name="identifier")
    treatment = pd.Series(pd.Categorical(arms, categories=["control", "logos", "pathos"]), index=index)
    return treatment, pd.Series(np.asarray(usage, dtype=float), index=index)


class TestComplianceModel:
    def test_control_never_aware(self):
        treatment, usage = make_inputs(["control"] * 500, [7.0] * 500)
        awareness = make_model().draw(treatment, usage, np.random.default_rng(0))
        assert (awareness == "No").all()
        assert (make_model().probability(treatment, usage) == 0).all()

    def test_average_user_gets_configured_rate(self):
        treatment, usage = make_inputs(["logos", "pathos"], [3.5, 3.5])
        prob = make_model().probability(treatment, usage)
        np.testing.assert_allclose(prob, [0.7, 0.6])

    def test_heavier_usage_raises_awareness(self):
        treatment, usage = make_inputs(["logos"] * 3, [0.0, 3.5, 7.0])
        prob = make_model().probability(treatment, usage).to_numpy()
        assert prob[0] < prob[1] < prob[2] < 1

    def test_zero_slope_ignores_usage(self):
        treatment, usage = make_inputs(["pathos"] * 2, [0.0, 7.0])
        prob = make_model(usage_slope=0.0).probability(treatment, usage)
        np.testing.assert_allclose(prob, [0.6, 0.6])

    def test_realised_rate_tracks_probability(self):
        n = 20_000
        treatment, usage = make_inputs(["logos"] * n, [3.5] * n)
        awareness = make_model().draw(treatment, usage, np.random.default_rng(1))
        assert abs((awareness == "Yes").mean() - 0.7) < 0.02

    def test_awareness_dtype(self):
        treatment, usage = make_inputs(["logos", "control"], [1.0, 1.0])
        awareness = make_model().draw(treatment, usage, np.random.default_rng(2))
        assert list(awareness.cat.categories) == ["No", "Yes"]
        assert awareness.name == "ad_awareness"
        assert awareness.index.equals(treatment.index)

    def test_unknown_arm_raises(self):
        index = pd.Index(["10000"], name="identifier")
        with pytest.raises(InvalidInputError, match="Unknown arm"):
            make_model().probability(pd.Series(["placebo"], index=index), pd.Series([1.0], index=index))

    def test_awareness_labels_come_from_schema(self):
        treatment, usage = make_inputs(["control", "logos", "pathos"] * 200, [7.0] * 600)
        awareness = make_model().draw(treatment, usage, np.random.default_rng(4))
        assert set(awareness.astype(str)) == {schema.NOT_AWARE, schema.AWARE}
        assert (awareness[treatment == "control"] == schema.NOT_AWARE).all()
