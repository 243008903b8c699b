import numpy as np
import pandas as pd

from rehearsal import AttritionConfig, AttritionModel


def make_ids(n):
    return pd.Index([f"{40_000 + i}" for i in range(n)], name="identifier")


class TestAttritionModel:
    def test_retained_count_is_exact(self):
        model = AttritionModel(AttritionConfig(rate=0.10))
        retained = model.select(make_ids(5_000), np.random.default_rng(42))
        assert len(retained) == 4_500

    def test_rounding_to_nearest(self):
        model = AttritionModel(AttritionConfig(rate=0.25))
        assert model.retained_count(10) == 8   # 7.5 rounds up
        assert model.retained_count(9) == 7    # 6.75
        assert model.retained_count(6) == 5    # 4.5 rounds up

    def test_retained_is_subset_in_original_order(self):
        ids = make_ids(1_000)
        retained = AttritionModel(AttritionConfig(rate=0.3)).select(ids, np.random.default_rng(0))
        assert retained.isin(ids).all()
        assert retained.is_unique
        positions = ids.get_indexer(retained)
        assert (np.diff(positions) > 0).all()

    def test_zero_rate_keeps_everyone(self):
        ids = make_ids(50)
        retained = AttritionModel(AttritionConfig(rate=0.0)).select(ids, np.random.default_rng(0))
        assert retained.equals(ids)

    def test_selection_is_uniform(self):
        """Every subject should be retained with probability 1 - rate."""
        ids = make_ids(20)
        model = AttritionModel(AttritionConfig(rate=0.5))
        rng = np.random.default_rng(3)
        hits = pd.Series(0, index=ids)
        for _ in range(2_000):
            hits[model.select(ids, rng)] += 1
        assert ((hits / 2_000 - 0.5).abs() < 0.06).all()

    def test_same_seed_same_selection(self):
        ids = make_ids(300)
        model = AttritionModel(AttritionConfig())
        a = model.select(ids, np.random.default_rng(8))
        b = model.select(ids, np.random.default_rng(8))
        assert a.equals(b)
