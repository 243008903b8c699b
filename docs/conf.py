import os
import sys
from importlib.metadata import PackageNotFoundError, version as _dist_version

sys.path.insert(0, os.path.abspath(".."))

project   = "rehearsal"
copyright = "2026, rehearsal contributors"
author    = "rehearsal contributors"

try:
    release = _dist_version("rehearsal")
except PackageNotFoundError:
    release = "0.1.0"
version = ".".join(release.split(".")[:2])

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
    "sphinx_copybutton",
]

html_theme = "sphinx_rtd_theme"

# Configs are frozen dataclasses; document fields in declaration order
autodoc_member_order = "bysource"
autodoc_typehints    = "description"
autodoc_default_options = {
    "members": True,
    "show-inheritance": True,
}
always_document_param_types = True

napoleon_use_param  = True
napoleon_use_rtype  = False
napoleon_numpy_docstring  = True
napoleon_google_docstring = False

# Generator, DataFrame, CategoricalDtype and OLS results appear in signatures
intersphinx_mapping = {
    "python":      ("https://docs.python.org/3", None),
    "numpy":       ("https://numpy.org/doc/stable", None),
    "pandas":      ("https://pandas.pydata.org/docs", None),
    "statsmodels": ("https://www.statsmodels.org/stable", None),
}

# Copy example sessions without the prompt
copybutton_prompt_text = r">>> |\.\.\. "
copybutton_prompt_is_regexp = True
