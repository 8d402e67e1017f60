"""
Exception hierarchy for the load generator.

Only :class:`ConfigurationError` and :class:`FixtureError` are allowed to
escape a run: both describe a setup problem that must stop the run before
any virtual user starts.  Everything that happens *inside* an iteration is
local to that iteration and is counted rather than raised.
"""

from __future__ import annotations


class CrocloadError(Exception):
    """Base class for all errors raised by the load generator."""


class ConfigurationError(CrocloadError):
    """Run options, scenario profiles or threshold expressions are invalid."""


class FixtureError(CrocloadError):
    """The credential fixture is missing, unreadable or malformed."""


class UnknownCheckError(CrocloadError, KeyError):
    """A check result was recorded under a name that was never registered."""


class IterationInterrupted(CrocloadError):
    """
    Raised inside an iteration when its worker has been told to stop now.

    Workers are threads and cannot be killed, so interruption is
    cooperative: think-time sleeps and outbound requests act as
    checkpoints that raise this exception once the worker's interrupt
    flag is set.  The harness catches it and counts the iteration as
    aborted.
    """
