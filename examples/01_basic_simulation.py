"""
Basic simulation: a three-arm vaccine-messaging experiment.

5,000 US adults are randomised to control, logos (fact-based ad) or pathos
(emotional ad) within age group × gender blocks. 10% drop out before the
endline survey. Logos is configured as the stronger message, and both
effects shrink for subjects who were already willing to vaccinate.
"""

import logging

from rehearsal import ExperimentConfig, SimulatedExperiment

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

config = ExperimentConfig(n=5_000, seed=42, blocking=("age_group", "gender"))
result = SimulatedExperiment(config).run()

print(result.summary())
print(result.executive_summary())

print(result.baseline.head())
print(result.endline.head())

result.to_csv("simulated")
