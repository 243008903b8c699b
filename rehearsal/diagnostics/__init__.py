from ._check import Assumption, DesignCheck, DesignReport
from .balance import balance_pvalues
from .effects import estimate_itt

__all__ = ["Assumption", "DesignCheck", "DesignReport", "balance_pvalues", "estimate_itt"]
