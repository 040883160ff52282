"""Projection of source-store entities into the graph."""

from .base import CancellationToken, EdgeCounts, EntitySyncer, KindSyncReport, NodeCounts
from .decoding import DecodedIds, decode_id_list
from .orchestrator import ReconcileReport, SyncMode, SyncOrchestrator, SyncResult
from .source import SnapshotSource, SourceStore
from .syncers import SYNC_TIERS

__all__ = [
    "CancellationToken",
    "DecodedIds",
    "EdgeCounts",
    "EntitySyncer",
    "KindSyncReport",
    "NodeCounts",
    "ReconcileReport",
    "SYNC_TIERS",
    "SnapshotSource",
    "SourceStore",
    "SyncMode",
    "SyncOrchestrator",
    "SyncResult",
    "decode_id_list",
]
