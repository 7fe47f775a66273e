"""
count_services -- orchestration of count sessions.

Composes the pure engines in ``count_engines`` with persistence
(``CountRepository``), per-session locking (``SessionLockRegistry``) and
the catalog / inventory-ledger ports.  ``CountService`` is the entry point.
"""

from count_services.count_service import (
    ApprovalResult,
    AreaState,
    CompletionResult,
    CountService,
    SessionState,
)
from count_services.ports import (
    CatalogReader,
    InMemoryInventoryLedger,
    InventoryLedger,
    StaticCatalog,
)
from count_services.repository import CountRepository
from count_services.session_lock import SessionLockRegistry

__all__ = [
    "ApprovalResult",
    "AreaState",
    "CatalogReader",
    "CompletionResult",
    "CountRepository",
    "CountService",
    "InMemoryInventoryLedger",
    "InventoryLedger",
    "SessionLockRegistry",
    "SessionState",
    "StaticCatalog",
]
