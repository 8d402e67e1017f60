"""
Built-in workloads.  Importing this package registers them with
:data:`crocload.harness.REGISTRY`.
"""

from . import crocodiles  # noqa: F401
