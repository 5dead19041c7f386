"""
Roadmap ingestion pipeline.

Normalizer -> identity resolver / cycle manager -> synchronizer -> mailer.
"""

from roadmap_sync.core.roadmap.cycles import CycleManager
from roadmap_sync.core.roadmap.normalizer import NormalizedRoadmap, normalize_payload
from roadmap_sync.core.roadmap.notifications import CredentialMailer, CredentialNotice
from roadmap_sync.core.roadmap.resolver import IdentityResolver
from roadmap_sync.core.roadmap.service import AddRoadmapResult, RoadmapService, create_roadmap_service
from roadmap_sync.core.roadmap.synchronizer import RoadmapSynchronizer, SyncReport, SyncTarget
from roadmap_sync.core.roadmap.titles import WeekTitleGenerator

__all__ = [
    "AddRoadmapResult",
    "CredentialMailer",
    "CredentialNotice",
    "CycleManager",
    "IdentityResolver",
    "NormalizedRoadmap",
    "RoadmapService",
    "RoadmapSynchronizer",
    "SyncReport",
    "SyncTarget",
    "WeekTitleGenerator",
    "create_roadmap_service",
    "normalize_payload",
]
