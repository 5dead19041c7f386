"""
Ultra Roadmap Sync
==================

Ingests coaching roadmap documents and synchronizes them into coach/client
cycles.
"""

__version__ = "0.1.0"
