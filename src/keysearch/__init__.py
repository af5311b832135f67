"""
Distributed brute-force key search.

A single allocator carves the key-space into chunks and hands them to
worker processes over a line-based TCP protocol.
"""

__version__ = "0.1"
