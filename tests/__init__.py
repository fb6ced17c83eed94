"""Poller test suite.

Unit tests live in tests/unit and need no network access: responses are
built in memory and offsets are written under a per-test state directory.
"""
