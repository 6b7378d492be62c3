"""
Graves storage - persistence and cache primitives for grave records.

The subsystem keeps an authoritative in-memory view of graves and their
auxiliary visual records while persisting every change asynchronously to
one of six relational backends.
"""

__version__ = "0.1.0"
