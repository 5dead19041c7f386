"""
Ultra Roadmap Sync - Core Package
=================================

Configuration, persistence and the roadmap pipeline.
"""

from roadmap_sync.core.config import settings
from roadmap_sync.core.database import Base, session_scope

__all__ = ["Base", "session_scope", "settings"]
