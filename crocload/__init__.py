"""
crocload: scenario-driven load generator for the Crocodiles REST API.

Workloads are plain functions registered with :func:`workload`; scenario
profiles and thresholds come from a YAML options document; a
:class:`LoadTestRun` drives the scenarios and evaluates thresholds.
"""

from .errors import (
    ConfigurationError,
    CrocloadError,
    FixtureError,
    IterationInterrupted,
    UnknownCheckError,
)
from .harness import IterationContext, workload
from .options import load_options, parse_options
from .runner import LoadTestRun, RunResult

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "CrocloadError",
    "FixtureError",
    "IterationContext",
    "IterationInterrupted",
    "LoadTestRun",
    "RunResult",
    "UnknownCheckError",
    "load_options",
    "parse_options",
    "workload",
]
