"""
Design checks: would the planned analysis find the effects?

Runs the same design twice:
  1. 5,000 subjects with the default noise → every check passes.
  2. 300 subjects with a noisy outcome and rarely noticed ads → the effect
     and awareness checks are likely to fail.
"""

from rehearsal import ComplianceConfig, EffectConfig, ExperimentConfig, SimulatedExperiment

# ── Well-powered design ────────────────────────────────────────────────────
print("=" * 52)
print("WELL-POWERED  (n = 5,000)")
print("=" * 52)

strong = SimulatedExperiment(ExperimentConfig(n=5_000, seed=0)).run()
print(strong.check().summary())

# ── Under-powered design ───────────────────────────────────────────────────
print("=" * 52)
print("UNDER-POWERED  (n = 300, noise sd = 2, awareness ≈ 5%)")
print("=" * 52)

weak_config = ExperimentConfig(
    n=300,
    seed=0,
    effects=EffectConfig(noise_sd=2.0),
    compliance=ComplianceConfig(awareness={"logos": 0.05, "pathos": 0.04}, usage_slope=0.0),
)
weak = SimulatedExperiment(weak_config).run()
report = weak.check()
print(report.summary())

# Stage verdicts and the numbers behind each check
print(report.stages)
print(report.to_frame().to_string(index=False))
