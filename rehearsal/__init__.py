import logging

from ._exceptions import BlockTooSmallError, ConfigurationError, InvalidInputError, RehearsalError
from .assembler import DatasetAssembler
from .assignment import BlockedAssigner
from .attrition import AttritionModel
from .compliance import ComplianceModel
from .config import (
    AttritionConfig, CategoricalSpec, ComplianceConfig, ContinuousSpec,
    EffectConfig, ExperimentConfig, PopulationConfig, SurveyScale,
)
from .covariates import CovariateSampler
from .diagnostics import Assumption, DesignCheck, DesignReport
from .experiment import SimulatedExperiment, SimulationResult, read_tables
from .outcomes import PotentialOutcomeModel

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "SimulatedExperiment", "SimulationResult", "read_tables",
    "ExperimentConfig", "PopulationConfig", "CategoricalSpec", "ContinuousSpec", "SurveyScale",
    "EffectConfig", "ComplianceConfig", "AttritionConfig",
    "CovariateSampler", "BlockedAssigner", "PotentialOutcomeModel",
    "ComplianceModel", "AttritionModel", "DatasetAssembler",
    "Assumption", "DesignCheck", "DesignReport",
    "RehearsalError", "ConfigurationError", "BlockTooSmallError", "InvalidInputError",
]
