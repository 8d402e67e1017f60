"""
Test suite for crocload.

This package contains:
- unit/: engine components in isolation (no sockets, no worker threads)
- integration/: executors on fake transports, the stand-in API, and
  workloads and CLI runs against the live stand-in
"""
