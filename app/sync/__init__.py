"""Client-side board synchronisation."""

from app.sync.client import BoardTransport, WorkflowApiClient
from app.sync.controller import BoardSnapshot, PendingOperation, SyncController

__all__ = ["BoardSnapshot", "BoardTransport", "PendingOperation", "SyncController", "WorkflowApiClient"]
