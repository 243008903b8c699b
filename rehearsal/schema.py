"""
Shared level sets and pandas dtypes for every categorical column.

Both output tables take their categorical dtypes from here, so the baseline
and endline tables always agree on level sets and level ordering.
"""
from __future__ import annotations

import pandas as pd

CONTROL = "control"
ARMS: tuple[str, ...] = (CONTROL, "logos", "pathos")
TREATED_ARMS: tuple[str, ...] = ARMS[1:]

AWARENESS_LEVELS: tuple[str, ...] = ("No", "Yes")
NOT_AWARE, AWARE = AWARENESS_LEVELS

GENDER_LEVELS: tuple[str, ...] = ("Female", "Male")
RACE_LEVELS: tuple[str, ...] = ("White", "Black", "Hispanic", "Asian", "Other")
AGE_GROUP_LEVELS: tuple[str, ...] = ("18-29", "30-44", "45-64", "65+")
EDU_LEVELS: tuple[str, ...] = (
    "Below high school",
    "High school",
    "Some college",
    "Bachelor's or above",
)
INCOME_LEVELS: tuple[str, ...] = (
    "Under $25k",
    "$25k-$50k",
    "$50k-$75k",
    "$75k-$100k",
    "$100k-$150k",
    "$150k or more",
)

# Resident population in millions (2020 census, rounded), used as sampling weights.
STATE_POPULATION: dict[str, float] = {
    "Alabama": 5.02, "Alaska": 0.73, "Arizona": 7.15, "Arkansas": 3.01,
    "California": 39.54, "Colorado": 5.77, "Connecticut": 3.61, "Delaware": 0.99,
    "District of Columbia": 0.69, "Florida": 21.54, "Georgia": 10.71, "Hawaii": 1.46,
    "Idaho": 1.84, "Illinois": 12.81, "Indiana": 6.79, "Iowa": 3.19,
    "Kansas": 2.94, "Kentucky": 4.51, "Louisiana": 4.66, "Maine": 1.36,
    "Maryland": 6.18, "Massachusetts": 7.03, "Michigan": 10.08, "Minnesota": 5.71,
    "Mississippi": 2.96, "Missouri": 6.15, "Montana": 1.08, "Nebraska": 1.96,
    "Nevada": 3.10, "New Hampshire": 1.38, "New Jersey": 9.29, "New Mexico": 2.12,
    "New York": 20.20, "North Carolina": 10.44, "North Dakota": 0.78, "Ohio": 11.80,
    "Oklahoma": 3.96, "Oregon": 4.24, "Pennsylvania": 13.00, "Rhode Island": 1.10,
    "South Carolina": 5.12, "South Dakota": 0.89, "Tennessee": 6.91, "Texas": 29.15,
    "Utah": 3.27, "Vermont": 0.64, "Virginia": 8.63, "Washington": 7.71,
    "West Virginia": 1.79, "Wisconsin": 5.89, "Wyoming": 0.58,
}
STATE_LEVELS: tuple[str, ...] = tuple(STATE_POPULATION)

CATEGORICAL_COVARIATES: tuple[str, ...] = (
    "gender", "race", "age_group", "edu", "income_bracket", "state",
)
NUMERIC_COVARIATES: tuple[str, ...] = ("fb_usage", "vax_percpt")
COVARIATES: tuple[str, ...] = CATEGORICAL_COVARIATES + NUMERIC_COVARIATES

BASELINE_COLUMNS: list[str] = ["identifier", *COVARIATES, "treatment"]
ENDLINE_COLUMNS: list[str] = [*BASELINE_COLUMNS, "ad_awareness", "new_vax_percpt"]

ID_DIGITS = 5


def categorical_dtype(levels, ordered: bool = False) -> pd.CategoricalDtype:
    return pd.CategoricalDtype(categories=list(levels), ordered=ordered)


TREATMENT_DTYPE = categorical_dtype(ARMS)
AWARENESS_DTYPE = categorical_dtype(AWARENESS_LEVELS)
