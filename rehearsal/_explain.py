"""
Narrative explanation renderer for simulated experiments.

``explain_simulation`` takes a ``SimulationResult`` and returns a formatted
multi-line string. ``SimulationResult.executive_summary()`` calls it.
"""
from __future__ import annotations

from . import schema

_SEP = "━" * 66


# ── Shared helpers ─────────────────────────────────────────────────────────────

def _list_vars(names: list[str]) -> str:
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + f" and {names[-1]}"


def _effect_phrase(arm: str, effect: float) -> str:
    direction = "raises" if effect >= 0 else "lowers"
    return (
        f"being assigned to {arm} {direction} new_vax_percpt by "
        f"{abs(effect):.4f} points on average, relative to control"
    )


# ── Section builders ───────────────────────────────────────────────────────────

def _design_section(result) -> str:
    config = result.config
    blocking = list(config.blocking)
    lines = ["DESIGN"]
    if blocking:
        lines.append(
            f"{config.n} subjects were sampled and randomised to {_list_vars(list(schema.ARMS))} "
            f"within {result.blocks.nunique()} blocks formed by {_list_vars(blocking)}."
        )
    else:
        lines.append(
            f"{config.n} subjects were sampled and randomised to {_list_vars(list(schema.ARMS))} "
            f"without blocking."
        )
    lines.append(
        f"Between waves {config.attrition.rate:.1%} of subjects were lost completely at "
        f"random, leaving {len(result.endline)} endline respondents."
    )
    return "\n".join(lines)


def _model_section(result) -> str:
    effects = result.config.effects
    scale = result.config.scale
    lines = [
        "CAUSAL MODEL (GROUND TRUTH)",
        f"new_vax_percpt = vax_percpt + main effect + slope × (vax_percpt − {scale.low:g}) "
        f"+ N(0, {effects.noise_sd:g}²), clipped to [{scale.low:g}, {scale.high:g}].",
    ]
    for arm in schema.TREATED_ARMS:
        lines.append(
            f"  • {arm}: main effect {effects.main_effects[arm]:+.3f}, "
            f"slope {effects.interactions[arm]:+.3f}"
        )
    lines.append("")
    truth = result.true_itt
    for arm in schema.TREATED_ARMS:
        lines.append(f"In this sample, {_effect_phrase(arm, truth[arm])}.")
    return "\n".join(lines)


def _awareness_section(result) -> str:
    rates = result.awareness_rate
    lines = [
        "AWARENESS",
        "Control subjects were never shown an ad and always report 'No'.",
    ]
    for arm in schema.TREATED_ARMS:
        lines.append(f"  • {arm}: {rates[arm]:.1%} of endline respondents recall the ad")
    lines.append(
        "Assignment can instrument awareness: the IV (Wald) estimate of the effect "
        "of awareness is the ITT divided by the awareness rate."
    )
    return "\n".join(lines)


def _assumptions_section(assumptions: list) -> str:
    n = len(assumptions)
    n_t = sum(1 for a in assumptions if a.testable)
    lines = [
        "ASSUMPTIONS",
        f"{n_t} of the {n} simplifying assumptions are tested by result.check(); "
        f"the rest hold by construction.",
        "",
    ]
    for a in assumptions:
        lines.append(f"  {a.label()}  {a.name}")
    return "\n".join(lines)


# ── Public ─────────────────────────────────────────────────────────────────────

def explain_simulation(result) -> str:
    sections = [
        _SEP,
        "  Executive Summary: Simulated Field Experiment",
        _SEP,
        _design_section(result),
        _model_section(result),
        _awareness_section(result),
        _assumptions_section(result.assumptions),
        _SEP,
    ]
    return "\n\n".join(sections)
