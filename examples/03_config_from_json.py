"""
Configuration from JSON, plus a long panel for difference-in-differences.

The design is blocked on education and binned Facebook usage, with 20%
attrition and a larger interaction for the logos arm.
"""

import json

import statsmodels.formula.api as smf

from rehearsal import ExperimentConfig, SimulatedExperiment

CONFIG = json.loads("""
{
    "n": 4000,
    "seed": 7,
    "blocking": ["edu", "fb_usage"],
    "block_bins": 3,
    "attrition": {"rate": 0.2},
    "effects": {
        "main_effects": {"logos": 0.7, "pathos": 0.4},
        "interactions": {"logos": -0.12, "pathos": -0.05}
    }
}
""")

result = SimulatedExperiment(ExperimentConfig.from_dict(CONFIG)).run()
print(result.summary())

panel = result.long_panel()
did = smf.ols("score ~ C(treatment) * post", data=panel).fit()
print(did.params.filter(like=":post"))
print("True ITT:", result.true_itt)
