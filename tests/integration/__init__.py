"""
Integration tests.

These exercise real worker threads and, where a ``live_server`` fixture is
requested, real HTTP against the stand-in Crocodiles API.
"""
